from typing import Optional

from auth import is_valid_email, normalize_email
from errors import ValidationError


def draft_forward_email(document: dict, recipient_email: str, sender_message: Optional[str] = None,
                        sender_name: Optional[str] = None) -> dict:
    """Draft the body of an email forwarding ``document``. Nothing is sent."""
    recipient = normalize_email(recipient_email)
    if not recipient or not is_valid_email(recipient):
        raise ValidationError("Please enter a valid recipient email address.")

    lines = [
        "Hello,",
        "",
        "I am forwarding the following document for your attention.",
        "",
        f"Title: {document.get('title', '')}",
        f"Description: {document.get('description', '')}",
    ]
    message = (sender_message or "").strip()
    if message:
        lines += ["", message]
    lines += ["", "Best regards,"]
    if sender_name:
        lines.append(sender_name)
    return {"recipientEmail": recipient, "emailBody": "\n".join(lines)}
