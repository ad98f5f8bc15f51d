"""Gmail and Google Calendar operations for the email-calendar provider."""

from __future__ import annotations

import base64
import datetime as dt
from collections.abc import Mapping
from email.mime.text import MIMEText
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..credentials import Credential, Provider
from ..errors import InputValidationError
from .base import HandlerContext, Operation, ProviderHandler

GMAIL_API = "https://gmail.googleapis.com/gmail/v1/users/me"
CALENDAR_API = "https://www.googleapis.com/calendar/v3/calendars/primary"

DEFAULT_EVENT_TITLE = "Meeting"


def _zone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo("UTC")


class GoogleWorkspaceHandler(ProviderHandler):
    provider = Provider.EMAIL_CALENDAR

    def operations(self) -> Mapping[str, Operation]:
        return {
            "send_email": self.send_email,
            "read_email": self.read_email,
            "create_event": self.create_event,
            "list_events": self.list_events,
        }

    # ------------------------------------------------------------------
    # Gmail
    # ------------------------------------------------------------------
    def send_email(
        self, credential: Credential, slots: Mapping[str, Any], context: HandlerContext
    ) -> dict[str, Any]:
        message = MIMEText(str(slots["body"]), "plain", "utf-8")
        message["To"] = str(slots["to"])
        message["Subject"] = str(slots["subject"])
        sender = credential.account.get("email")
        if sender:
            message["From"] = str(sender)
        raw = base64.urlsafe_b64encode(message.as_bytes()).decode("ascii")

        payload = self._request(
            "POST",
            f"{GMAIL_API}/messages/send",
            headers=self._bearer(credential),
            json={"raw": raw},
            idempotent=False,
        )
        return {
            "message_id": payload.get("id"),
            "to": slots["to"],
            "subject": slots["subject"],
        }

    def read_email(
        self, credential: Credential, slots: Mapping[str, Any], context: HandlerContext
    ) -> dict[str, Any]:
        terms = ["in:inbox"]
        if slots.get("unread_only"):
            terms.append("is:unread")
        if slots.get("sender"):
            terms.append(f"from:{slots['sender']}")
        headers = self._bearer(credential)
        listing = self._request(
            "GET",
            f"{GMAIL_API}/messages",
            headers=headers,
            params={"maxResults": int(slots.get("max_results") or 5), "q": " ".join(terms)},
        )
        messages = []
        for item in listing.get("messages") or []:
            detail = self._request(
                "GET",
                f"{GMAIL_API}/messages/{item['id']}",
                headers=headers,
                params={"format": "metadata", "metadataHeaders": ["From", "Subject"]},
            )
            found = {
                h.get("name", "").lower(): h.get("value", "")
                for h in (detail.get("payload") or {}).get("headers", [])
            }
            messages.append(
                {
                    "id": item["id"],
                    "from": found.get("from", ""),
                    "subject": found.get("subject", "(no subject)"),
                    "snippet": detail.get("snippet", ""),
                }
            )
        return {"messages": messages, "count": len(messages)}

    # ------------------------------------------------------------------
    # Calendar
    # ------------------------------------------------------------------
    def create_event(
        self, credential: Credential, slots: Mapping[str, Any], context: HandlerContext
    ) -> dict[str, Any]:
        tz = _zone(context.timezone)
        try:
            start = dt.datetime.combine(
                dt.date.fromisoformat(str(slots["date"])),
                dt.time.fromisoformat(str(slots["time"])),
                tzinfo=tz,
            )
        except ValueError as exc:
            raise InputValidationError(f"Invalid meeting date or time: {exc}") from exc
        duration = int(slots.get("duration") or 60)
        end = start + dt.timedelta(minutes=duration)
        title = slots.get("title") or DEFAULT_EVENT_TITLE

        body: dict[str, Any] = {
            "id": context.request_id,
            "summary": title,
            "start": {"dateTime": start.isoformat(), "timeZone": context.timezone},
            "end": {"dateTime": end.isoformat(), "timeZone": context.timezone},
        }
        if slots.get("attendees"):
            body["attendees"] = [{"email": email} for email in slots["attendees"]]
        if context.message:
            body["description"] = context.message

        headers = self._bearer(credential)
        try:
            event = self._request("POST", f"{CALENDAR_API}/events", headers=headers, json=body)
        except InputValidationError as exc:
            if exc.status_code != 409:
                raise
            # An earlier attempt of this request already created the event.
            event = self._request(
                "GET", f"{CALENDAR_API}/events/{context.request_id}", headers=headers
            )
        return {
            "event_id": event.get("id"),
            "link": event.get("htmlLink"),
            "title": title,
            "date": str(slots["date"]),
            "time": str(slots["time"]),
            "duration": duration,
        }

    def list_events(
        self, credential: Credential, slots: Mapping[str, Any], context: HandlerContext
    ) -> dict[str, Any]:
        tz = _zone(context.timezone)
        if slots.get("date"):
            day = dt.date.fromisoformat(str(slots["date"]))
            time_min = dt.datetime.combine(day, dt.time.min, tzinfo=tz)
            time_max = time_min + dt.timedelta(days=1)
        else:
            time_min = dt.datetime.now(tz)
            time_max = time_min + dt.timedelta(days=7)

        payload = self._request(
            "GET",
            f"{CALENDAR_API}/events",
            headers=self._bearer(credential),
            params={
                "timeMin": time_min.isoformat(),
                "timeMax": time_max.isoformat(),
                "singleEvents": "true",
                "orderBy": "startTime",
                "maxResults": int(slots.get("max_results") or 5),
            },
        )
        events = []
        for item in payload.get("items") or []:
            start = item.get("start") or {}
            events.append(
                {
                    "title": item.get("summary") or "(untitled)",
                    "start": start.get("dateTime") or start.get("date"),
                }
            )
        return {"events": events, "count": len(events), "date": slots.get("date")}


__all__ = ["GoogleWorkspaceHandler"]
