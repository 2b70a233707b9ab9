"""Request-admission and execution gateway.

Mediates access to a hosted LLM chat API and to local LLM CLI tools:
  - Message Normalizer (prompt/system or messages → conversation)
  - Admission Controller (per-client rate window, token/cost budget)
  - Execution Backends (remote HTTP call, local subprocess)
  - Output Parser (plain text / JSON envelope / import payload)
  - Provider Registry (provider name → backend)
  - Gateway Service (orchestration)
"""
