"""
Transactional email through the Resend HTTP API.

Sends are fire-and-forget: they run as background tasks and a failure is
logged without affecting the request that triggered it.
"""

import html
import logging
import os
from datetime import datetime
from typing import Iterable, Optional

import requests

logger = logging.getLogger(__name__)

RESEND_API_KEY = os.getenv("RESEND_API_KEY")
RESEND_URL = "https://api.resend.com/emails"
EMAIL_FROM = os.getenv("EMAIL_FROM", "Bookstore <onboarding@resend.dev>")
SITE_URL = os.getenv("SITE_URL", "http://localhost:5173")
REQUEST_TIMEOUT = 15  # seconds

_LAYOUT = """<!DOCTYPE html>
<html>
<head>
  <meta charset="utf-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, Arial, sans-serif; background-color: #f4f4f5; margin: 0; padding: 20px;">
  <div style="max-width: 600px; margin: 0 auto; background-color: #ffffff; border-radius: 12px; overflow: hidden;">
    <div style="background: {header_background}; padding: 40px 30px; text-align: center;">
      <h1 style="color: #ffffff; margin: 0; font-size: 26px;">{heading}</h1>
    </div>
    <div style="padding: 40px 30px; color: #52525b; font-size: 16px; line-height: 1.6;">
      {body}
      <div style="text-align: center; margin: 30px 0;">
        <a href="{button_url}" style="display: inline-block; background: linear-gradient(135deg, #2563eb 0%, #7c3aed 100%); color: #ffffff; text-decoration: none; padding: 14px 30px; border-radius: 8px; font-weight: 600;">{button_label}</a>
      </div>
    </div>
    <div style="background-color: #f4f4f5; padding: 20px 30px; text-align: center;">
      <p style="color: #a1a1aa; font-size: 12px; margin: 0;">&copy; {year} Bookstore. All rights reserved.</p>
    </div>
  </div>
</body>
</html>"""


def _render(heading, body, button_label, button_url, header_background):
    return _LAYOUT.format(
        heading=heading,
        body=body,
        button_label=button_label,
        button_url=button_url,
        header_background=header_background,
        year=datetime.now().year,
    )


def render_welcome_email(full_name: str) -> str:
    body = f"""
      <h2 style="color: #18181b;">Hello {html.escape(full_name)}! 👋</h2>
      <p>Thank you for joining our bookstore community! We're thrilled to have you with us.</p>
      <p>Here's what you can do now:</p>
      <ul>
        <li>📖 Browse our extensive collection of books</li>
        <li>📱 Read ebooks directly in your browser</li>
        <li>💳 Make secure purchases</li>
        <li>🔄 Exchange books with other readers</li>
        <li>❤️ Create your personalized wishlist</li>
      </ul>
      <p style="text-align: center;">Happy reading! 📚</p>"""
    return _render(
        "Welcome to Our Bookstore!",
        body,
        "Start Exploring",
        SITE_URL,
        "linear-gradient(135deg, #2563eb 0%, #7c3aed 100%)",
    )


def render_order_confirmation(
    full_name: str,
    order_id: str,
    items: Iterable[dict],
    total: float,
    shipping_address: str,
    discount_amount: float = 0,
) -> str:
    rows = "".join(
        f"""
        <tr>
          <td style="padding: 12px; border-bottom: 1px solid #e4e4e7;">{html.escape(item["name"])}</td>
          <td style="padding: 12px; border-bottom: 1px solid #e4e4e7; text-align: center;">{item["quantity"]}</td>
          <td style="padding: 12px; border-bottom: 1px solid #e4e4e7; text-align: right;">${item["price"] * item["quantity"]:.2f}</td>
        </tr>"""
        for item in items
    )
    discount_row = ""
    if discount_amount:
        discount_row = f"""
          <tr>
            <td colspan="2" style="padding: 8px 12px; text-align: right;">Discount</td>
            <td style="padding: 8px 12px; text-align: right;">-${discount_amount:.2f}</td>
          </tr>"""

    body = f"""
      <p>Hi {html.escape(full_name)},</p>
      <p>Great news! Your order has been confirmed and is being processed. Here are the details:</p>
      <div style="background-color: #f4f4f5; border-radius: 8px; padding: 20px; margin-bottom: 30px;">
        <p style="margin: 0; color: #71717a; font-size: 14px;">Order Number</p>
        <p style="margin: 5px 0 0 0; color: #18181b; font-size: 18px; font-weight: 600;">#{order_id[:8].upper()}</p>
      </div>
      <h3 style="color: #18181b;">Order Summary</h3>
      <table style="width: 100%; border-collapse: collapse; margin-bottom: 20px;">
        <thead>
          <tr style="background-color: #f4f4f5;">
            <th style="padding: 12px; text-align: left;">Item</th>
            <th style="padding: 12px; text-align: center;">Qty</th>
            <th style="padding: 12px; text-align: right;">Price</th>
          </tr>
        </thead>
        <tbody>{rows}
        </tbody>
        <tfoot>{discount_row}
          <tr>
            <td colspan="2" style="padding: 15px 12px; text-align: right; font-weight: 600;">Total</td>
            <td style="padding: 15px 12px; text-align: right; color: #16a34a; font-weight: 700;">${total:.2f}</td>
          </tr>
        </tfoot>
      </table>
      <h3 style="color: #18181b;">Shipping Address</h3>
      <div style="background-color: #f4f4f5; border-radius: 8px; padding: 15px; white-space: pre-line;">{html.escape(shipping_address)}</div>
      <p style="text-align: center;">Thank you for shopping with us! 📚</p>"""
    return _render(
        "Order Confirmed!",
        body,
        "View Order Details",
        f"{SITE_URL}/orders",
        "linear-gradient(135deg, #16a34a 0%, #22c55e 100%)",
    )


def render_password_reset_email(full_name: str, reset_url: str) -> str:
    body = f"""
      <p>Hi {html.escape(full_name)},</p>
      <p>We received a request to reset the password for your account.</p>
      <p>The link below is valid for 30 minutes. If you did not ask for a reset you can ignore this email.</p>"""
    return _render(
        "Reset Your Password",
        body,
        "Choose a New Password",
        reset_url,
        "linear-gradient(135deg, #2563eb 0%, #7c3aed 100%)",
    )


def send_email(to: str, subject: str, html_body: str, api_key: Optional[str] = None) -> Optional[dict]:
    """Send one email; returns Resend's response body, or None when skipped or failed."""
    api_key = api_key or RESEND_API_KEY
    if not api_key:
        logger.warning("RESEND_API_KEY is not configured; skipping email '%s' to %s", subject, to)
        return None

    try:
        response = requests.post(
            RESEND_URL,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
            json={"from": EMAIL_FROM, "to": [to], "subject": subject, "html": html_body},
            timeout=REQUEST_TIMEOUT,
        )
        data = response.json()
    except (requests.RequestException, ValueError) as e:
        logger.error("Error sending email '%s' to %s: %s", subject, to, e)
        return None

    if not response.ok:
        logger.error("Resend API error for %s: %s", to, data)
        return None

    logger.info("Email '%s' sent to %s: %s", subject, to, data.get("id"))
    return data


def send_welcome_email(email: str, full_name: str) -> Optional[dict]:
    logger.info("Sending welcome email to %s", email)
    return send_email(email, "Welcome to Our Bookstore! 📚", render_welcome_email(full_name))


def send_order_confirmation(
    email: str,
    full_name: str,
    order_id: str,
    items: Iterable[dict],
    total: float,
    shipping_address: str,
    discount_amount: float = 0,
) -> Optional[dict]:
    logger.info("Sending order confirmation email to %s for order %s", email, order_id)
    return send_email(
        email,
        f"Order Confirmed! #{order_id[:8]} 🎉",
        render_order_confirmation(full_name, order_id, items, total, shipping_address, discount_amount),
    )


def send_password_reset_email(email: str, full_name: str, token: str) -> Optional[dict]:
    logger.info("Sending password reset email to %s", email)
    reset_url = f"{SITE_URL}/reset-password?token={token}"
    return send_email(email, "Reset your password", render_password_reset_email(full_name, reset_url))
