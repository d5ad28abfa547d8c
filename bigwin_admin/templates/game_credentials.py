"""
HTML body for the game credentials email sent after a game ID is assigned.
"""

from html import escape
from typing import Optional


def credentials_subject(game_name: str) -> str:
    return f"Your {game_name} Game Credentials"


def render_game_credentials_email(
    username: str,
    game_name: str,
    game_id: str,
    game_password: Optional[str] = None
) -> str:
    """Render the credentials email. The password paragraph is omitted when no password is set."""
    password_html = ""
    if game_password:
        password_html = f"<p><strong>Password:</strong> {escape(game_password)}</p>"

    return f"""<!DOCTYPE html>
<html>
  <body style="font-family: Arial, sans-serif; color: #222;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
      <h2>Your {escape(game_name)} account is ready</h2>
      <p>Hello {escape(username or "")},</p>
      <p>Your game account has been activated. Use the credentials below to log in.</p>
      <div style="background: #f5f5f5; padding: 15px; border-radius: 6px;">
        <p><strong>Game:</strong> {escape(game_name)}</p>
        <p><strong>Game ID:</strong> {escape(game_id)}</p>
        {password_html}
      </div>
      <p>Please keep these credentials private.</p>
      <p>The BigWin Team</p>
    </div>
  </body>
</html>
"""
