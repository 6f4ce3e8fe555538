"""
Gallery admin backend.

A single FastAPI service that authenticates one admin against a credential
record in the Firebase Realtime Database and manages an image gallery whose
files live on Cloudinary.
"""
