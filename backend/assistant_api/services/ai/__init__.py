"""
AI services package.

- intent: rule-based classification of a chat message
- router: intent -> prompt template and generation settings
- llm_client: Gemini REST client

Classification is deterministic; the model is only called to generate the
reply.
"""
