"""
Process Mapping Studio
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, retry, JSON mode)
    - prompt_registry: YAML prompt template loading
    - schemas: pydantic models for structured completions
"""
