"""Email bodies for notification events."""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from html import escape

_CURRENCY_SYMBOLS = {"INR": "₹"}


def format_amount(amount: Decimal, currency: str = "INR") -> str:
    """Format a whole amount with the currency's digit grouping.

    INR groups the last three digits, then pairs: 1234567 -> 12,34,567.
    """
    symbol = _CURRENCY_SYMBOLS.get(currency, f"{currency} ")
    whole = int(amount)
    sign = "-" if whole < 0 else ""
    digits = str(abs(whole))
    if currency == "INR" and len(digits) > 3:
        head, tail = digits[:-3], digits[-3:]
        pairs = []
        while len(head) > 2:
            pairs.insert(0, head[-2:])
            head = head[:-2]
        if head:
            pairs.insert(0, head)
        grouped = ",".join(pairs) + "," + tail
    else:
        grouped = f"{abs(whole):,}"
    return f"{sign}{symbol}{grouped}"


def format_deadline(deadline: datetime | None) -> str:
    if deadline is None:
        return "Not specified"
    return f"{deadline.day} {deadline:%B %Y}"


def render_project_offer(
    from_name: str,
    project_title: str,
    description: str,
    budget: Decimal,
    deadline: datetime | None,
    frontend_url: str,
    currency: str = "INR",
) -> tuple[str, str, str]:
    """Return (subject, text, html) of the email a worker gets for a new offer."""
    amount = format_amount(budget, currency)
    deadline_text = format_deadline(deadline)
    chat_url = f"{frontend_url.rstrip('/')}/chat"

    subject = f'New Project Offer: "{project_title}" from {from_name}'
    text = "\n".join(
        [
            f"New Project Offer from {from_name}",
            "",
            f"Project: {project_title}",
            f"Description: {description or 'No description provided'}",
            f"Budget: {amount}",
            f"Deadline: {deadline_text}",
            "",
            "Log in to your account to accept or reject this offer.",
            chat_url,
        ]
    )

    description_html = (
        f'<p style="margin: 0 0 8px 0;"><strong>Description:</strong><br>{escape(description)}</p>'
        if description
        else ""
    )
    html = f"""
<div style="font-family: sans-serif; max-width: 600px; margin: 0 auto; padding: 24px;">
  <h2 style="color: #2F5DAA;">New Project Offer</h2>
  <p><strong>{escape(from_name)}</strong> has sent you a project offer on ProWorkers.</p>
  <div style="background: #f5f5f5; padding: 16px; border-radius: 8px; margin: 16px 0;">
    <p style="margin: 0 0 8px 0;"><strong>Project Title:</strong> {escape(project_title)}</p>
    {description_html}
    <p style="margin: 0 0 8px 0;"><strong>Budget:</strong> {amount}</p>
    <p style="margin: 0;"><strong>Deadline:</strong> {deadline_text}</p>
  </div>
  <p>Log in to your account to <strong>Accept</strong> or <strong>Reject</strong> this offer.</p>
  <p><a href="{escape(chat_url)}" style="color: #F47C2C; font-weight: bold;">View in Chat</a></p>
</div>
""".strip()
    return subject, text, html
