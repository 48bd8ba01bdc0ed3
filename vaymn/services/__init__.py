"""VAYMN Library - external services

- Gemini book details service
"""
