"""Core models, exceptions, validation and server logic."""
