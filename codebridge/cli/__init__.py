"""CLI module for codebridge."""
