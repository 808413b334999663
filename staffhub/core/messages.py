"""
StaffHub — Notification message templates.

Chat channels (Telegram, WhatsApp) get Markdown text; email gets a subject
and a small HTML body. Every builder takes the recipient's display name so
the dispatcher can render per recipient.
"""

from __future__ import annotations

from datetime import date
from html import escape

from staffhub.config import settings
from staffhub.data.models import Event
from staffhub.ports.notification_port import Message


def long_date(iso_date: str | None) -> str:
    """'2025-11-15' -> 'Saturday, November 15, 2025'. Unparseable input is returned as-is."""
    if not iso_date:
        return ""
    try:
        d = date.fromisoformat(iso_date)
    except ValueError:
        return iso_date
    return f"{d:%A, %B} {d.day}, {d.year}"


def _extras(event: Event, description_label: str = "Description") -> str:
    lines = ""
    if event.description:
        lines += f"\n\n📝 {description_label}: {event.description}"
    if event.notes:
        lines += f"\n\n💬 Notes: {event.notes}"
    return lines


def _html_page(title: str, body: str, colour: str = "#4F46E5") -> str:
    return (
        "<!DOCTYPE html><html><body style=\"font-family: Arial, sans-serif; color: #333;\">"
        f"<div style=\"max-width: 600px; margin: 0 auto; padding: 20px;\">"
        f"<div style=\"background-color: {colour}; color: white; padding: 20px; text-align: center;\">"
        f"<h2>{escape(settings.APP_NAME)}</h2><h1>{title}</h1></div>"
        f"<div style=\"background-color: #f9fafb; padding: 30px;\">{body}</div>"
        "<p style=\"text-align: center; font-size: 12px; color: #6b7280;\">"
        "This is an automated message. Please do not reply to this email.</p>"
        "</div></body></html>"
    )


# ---------------------------------------------------------------------------
# Lifecycle notifications
# ---------------------------------------------------------------------------


def new_event_message(event: Event, name: str) -> Message:
    text = (
        "🎉 *New Event Available!*\n\n"
        f"Hello {name},\n\n"
        "A new event has been posted that you're eligible to attend:\n\n"
        f"📅 *{event.name}*\n"
        f"📍 Location: {event.location}\n"
        f"📆 Date: {long_date(event.date)}\n"
        f"🕐 Time: {event.time}\n"
        f"⏱️ Duration: {event.duration}\n"
        f"🎯 Required Level: {event.required_level}\n"
        f"⭐ Points: {event.points} points"
        f"{_extras(event)}\n\n"
        f"Log in to {settings.APP_NAME} to sign up for this event and start earning points!"
    )
    return Message(text=text, subject=f"New Event Available: {event.name}")


def selected_message(event: Event, name: str) -> Message:
    text = (
        f"Hello {name},\n\n"
        "🎉 *Congratulations!* 🎉\n\n"
        "You have been selected to participate in the following event:\n\n"
        f"📅 *{event.name}*\n"
        f"📍 Location: {event.location}\n"
        f"📆 Date: {long_date(event.date)}\n"
        f"🕐 Time: {event.time}\n"
        f"⭐ Points: {event.points} points"
        f"{_extras(event)}\n\n"
        "We look forward to seeing you there! "
        "You will receive your points after the event is completed."
    )
    return Message(text=text, subject=f"Selected: {event.name}")


def not_selected_message(event: Event, name: str) -> Message:
    text = (
        f"Hello {name},\n\n"
        f"Thank you for signing up for *{event.name}*!\n\n"
        f"Unfortunately, you were not selected for this event on {long_date(event.date)}."
        f"{_extras(event, 'Event Description')}\n\n"
        "Don't worry! There will be many more opportunities to participate in upcoming "
        "events. Please keep an eye on the app for new events and continue signing up.\n\n"
        "We appreciate your enthusiasm and look forward to having you at future events! 🌟"
    )
    return Message(text=text, subject=f"Not selected: {event.name}")


def event_updated_message(event: Event, name: str, changes: list[str]) -> Message:
    relation = "signed up for" if event.status.value == "open" else "selected for"
    changes_text = "\n".join(f"{i}. {change}" for i, change in enumerate(changes, start=1))
    text = (
        "📝 *Event Updated*\n\n"
        f"Hello {name},\n\n"
        f"An event you're {relation} has been updated:\n\n"
        f"*{event.name}*\n\n"
        f"*Changes Made:*\n{changes_text}\n\n"
        "*Current Event Details:*\n"
        f"📍 Location: {event.location}\n"
        f"📆 Date: {long_date(event.date)}\n"
        f"🕐 Time: {event.time}\n"
        f"⏱️ Duration: {event.duration}\n"
        f"⭐ Points: {event.points}\n\n"
        "Please make note of these changes. Log in to the app for full details."
    )
    return Message(text=text, subject=f"Event Updated: {event.name}")


def cancelled_message(event: Event, name: str) -> Message:
    text = (
        "⚠️ *Event Cancelled*\n\n"
        f"Hello {name},\n\n"
        "We regret to inform you that the following event has been cancelled:\n\n"
        f"📅 *{event.name}*\n"
        f"📍 Location: {event.location}\n"
        f"📆 Date: {long_date(event.date)}\n"
        f"🕐 Time: {event.time}"
        f"{_extras(event)}\n\n"
        "We apologize for any inconvenience. "
        "Please check the app for other upcoming events you can participate in."
    )
    body = (
        f"<p>Hello {escape(name)},</p>"
        "<p>We regret to inform you that the following event has been cancelled:</p>"
        f"<h2 style=\"color: #DC2626;\">{escape(event.name)}</h2>"
        f"<p><strong>📅 Date:</strong> {escape(long_date(event.date))}</p>"
        f"<p><strong>🕐 Time:</strong> {escape(event.time)}</p>"
        f"<p><strong>📍 Location:</strong> {escape(event.location)}</p>"
        "<p>We apologize for any inconvenience this may cause. "
        "Please check the app for other upcoming events you can participate in.</p>"
    )
    return Message(
        text=text,
        subject=f"Event Cancelled: {event.name}",
        html=_html_page("⚠️ Event Cancelled", body, colour="#DC2626"),
    )


# ---------------------------------------------------------------------------
# Points notifications
# ---------------------------------------------------------------------------


def _level_up_html(leveled_up: bool, new_level: str) -> str:
    if not leveled_up:
        return ""
    return f"<p style=\"color: #10B981; font-weight: bold;\">🎊 Level Up! You are now {escape(new_level)}!</p>"


def points_awarded_message(
    event: Event, name: str, new_total: int, new_level: str, leveled_up: bool,
) -> Message:
    level_line = f"\n🎊 Level Up! You are now {new_level}!" if leveled_up else ""
    text = (
        f"Hello {name},\n\n"
        "Congratulations! You have successfully completed an event and earned points!\n\n"
        f"⭐ +{event.points} points for *{event.name}* ({long_date(event.date)})\n"
        f"New Total: {new_total} points{level_line}"
    )
    body = (
        f"<p>Hello {escape(name)},</p>"
        "<p>Congratulations! You have successfully completed an event and earned points!</p>"
        f"<p style=\"font-size: 32px; color: #10B981;\"><strong>+{event.points}</strong></p>"
        f"<p>New Total: {new_total} points</p>"
        f"{_level_up_html(leveled_up, new_level)}"
        f"<p><strong>Event:</strong> {escape(event.name)}<br>"
        f"<strong>Date:</strong> {escape(long_date(event.date))}<br>"
        f"<strong>Location:</strong> {escape(event.location)}</p>"
        "<p>Thank you for your participation and dedication!</p>"
    )
    return Message(
        text=text,
        subject=f"Event Completed: You earned {event.points} points!",
        html=_html_page("🎉 Event Completed - Points Earned!", body, colour="#10B981"),
    )


def points_adjusted_message(
    name: str, delta: int, new_total: int, new_level: str, leveled_up: bool, reason: str,
) -> Message:
    verb = "Added" if delta > 0 else "Adjusted"
    signed = f"+{delta}" if delta > 0 else str(delta)
    level_line = f"\n🎊 Level Up! You are now {new_level}!" if leveled_up else ""
    text = (
        f"Hello {name},\n\n"
        f"Your points have been {verb.lower()}: {signed}\n"
        f"New Total: {new_total} points{level_line}\n\n"
        f"📝 Reason: {reason}"
    )
    colour = "#10B981" if delta > 0 else "#F59E0B"
    body = (
        f"<p>Hello {escape(name)},</p>"
        f"<p style=\"font-size: 32px; color: {colour};\"><strong>{signed}</strong></p>"
        f"<p>New Total: {new_total} points</p>"
        f"{_level_up_html(leveled_up, new_level)}"
        f"<h3>📝 Reason</h3><p>{escape(reason)}</p>"
        "<p>Keep up the great work!</p>"
    )
    return Message(
        text=text,
        subject=f"Points {verb}: {abs(delta)} points",
        html=_html_page(f"Points {verb}", body, colour=colour),
    )
