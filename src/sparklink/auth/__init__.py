"""Authentication and authorization.

Learn: Two ways in, one session format:
1. Email/password → bcrypt check → JWT session token
2. Google OAuth → find-or-create user → JWT session token

Protected routes only ever see the token's claim (CurrentIdentity).
"""
