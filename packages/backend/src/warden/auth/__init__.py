"""Authentication primitives.

Learn: the two cryptographic building blocks the services are built on:
1. JwtSigner → sign / verify claim sets (PyJWT)
2. BcryptHasher → one-way password hash + verify (bcrypt)

Plus the FastAPI dependencies that resolve a Bearer token into the
calling Principal.
"""
