"""Email templates."""

from .game_credentials import render_game_credentials_email, credentials_subject

__all__ = ["render_game_credentials_email", "credentials_subject"]
