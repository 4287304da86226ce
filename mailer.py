from typing import Dict, Optional, Protocol, Tuple

import resend


class MailDelivery(Protocol):
    def send(self, recipient: str, subject: str, html: str) -> Tuple[bool, Optional[str]]:
        ...


class ResendMailer:
    def __init__(self, api_key: str, sender: str):
        self.api_key = (api_key or "").strip()
        self.sender = sender
        if self.api_key:
            resend.api_key = self.api_key

    def send(self, recipient: str, subject: str, html: str) -> Tuple[bool, Optional[str]]:
        if not self.api_key:
            return False, "Resend API key is not configured."

        payload: Dict[str, object] = {
            "from": self.sender,
            "to": [recipient],
            "subject": subject,
            "html": html,
        }
        try:
            response = resend.Emails.send(payload)
        except Exception as exc:
            return False, str(exc)

        if not isinstance(response, dict) or not response.get("id"):
            return False, str(response)
        return True, None


def _button(url: str, label: str) -> str:
    return (
        f'<a href="{url}" style="display: inline-block; padding: 10px 20px; background-color: #7fad39; '
        f'color: white; text-decoration: none; border-radius: 4px; margin: 10px 0;">{label}</a>'
    )


def verification_email(first_name: str, url: str) -> Tuple[str, str]:
    html = f"""
        <h2>Welcome, {first_name}!</h2>
        <p>Thanks for signing up. Please confirm your email address using the link below:</p>
        {_button(url, "Verify email")}
        <p>If you did not create an account, you can ignore this email.</p>
    """
    return "Verify your email address", html


def reset_email(url: str) -> Tuple[str, str]:
    html = f"""
        <h2>Reset your password</h2>
        <p>You asked to reset your password. Use the link below to continue:</p>
        {_button(url, "Reset password")}
        <p>If you did not ask for this, please ignore this email.</p>
        <p>This link expires in 10 minutes.</p>
    """
    return "Password reset", html
