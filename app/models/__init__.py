"""Pali models package.

  - credential.py — Credential, CredentialInfo, Identity, IssuedKey, Role, RevokeOutcome
  - todo.py       — Todo, TodoChanges
  - schemas.py    — pydantic request/response models and the ApiResponse envelope
"""
