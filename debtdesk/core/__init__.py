"""Configuration, identity context and logging."""
