"""SMTP transport. Only the sending mechanics live here; who gets what is up to the caller."""

from __future__ import annotations

import logging
import mimetypes
import os
import smtplib
from dataclasses import dataclass
from email.message import EmailMessage
from email.utils import formataddr
from typing import Iterable, List, Optional

from ..settings import EmailSettings

logger = logging.getLogger("folha_presenca.mail")

TEST_SUBJECT_PREFIX = "[TESTE] "


@dataclass(frozen=True)
class SendResult:
    ok: bool
    error: Optional[str] = None

    @classmethod
    def sent(cls) -> "SendResult":
        return cls(ok=True)

    @classmethod
    def failed(cls, error: str) -> "SendResult":
        return cls(ok=False, error=error or "unknown error")


def resolve_recipients(
    test_mode: bool, test_email: str, addresses: Optional[Iterable[str]]
) -> List[str]:
    """
    Test mode: every recipient field collapses to the single test address.
    Otherwise the real addresses are used as given (blanks dropped).
    """
    if test_mode:
        return [test_email]
    return [a for a in (addresses or []) if a and a.strip()]


def resolve_subject(test_mode: bool, subject: str) -> str:
    return TEST_SUBJECT_PREFIX + subject if test_mode else subject


def _build_mime_message(
    sender: str,
    sender_name: str,
    to_addrs: List[str],
    cc_addrs: List[str],
    reply_to: List[str],
    subject: str,
    html_body: str,
    attachments: List[str],
) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = formataddr((sender_name, sender)) if sender_name else sender
    msg["To"] = ", ".join(to_addrs)
    if cc_addrs:
        msg["Cc"] = ", ".join(cc_addrs)
    if reply_to:
        msg["Reply-To"] = ", ".join(reply_to)
    msg["Subject"] = subject

    msg.set_content("Esta mensagem requer um cliente de email com suporte a HTML.")
    msg.add_alternative(html_body, subtype="html", charset="utf-8")

    for path in attachments:
        ctype, encoding = mimetypes.guess_type(path)
        if ctype is None or encoding is not None:
            ctype = "application/octet-stream"
        maintype, subtype = ctype.split("/", 1)
        with open(path, "rb") as f:
            msg.add_attachment(
                f.read(),
                maintype=maintype,
                subtype=subtype,
                filename=os.path.basename(path),
            )
    return msg


class EmailService:
    def __init__(self, settings: EmailSettings, test_mode: bool, test_email: str) -> None:
        self.st = settings
        self.test_mode = test_mode
        self.test_email = test_email

    def send(
        self,
        to: Iterable[str],
        subject: str,
        html_body: str,
        cc: Optional[Iterable[str]] = None,
        reply_to: Optional[Iterable[str]] = None,
        attachments: Optional[Iterable[str]] = None,
    ) -> SendResult:
        """
        Sends one HTML message. Never raises: failures come back as SendResult.failed.
        """
        try:
            to_addrs = resolve_recipients(self.test_mode, self.test_email, to)
            cc_addrs = (
                resolve_recipients(self.test_mode, self.test_email, cc) if cc else []
            )
            reply_addrs = (
                resolve_recipients(self.test_mode, self.test_email, reply_to)
                if reply_to
                else []
            )
            if not to_addrs:
                return SendResult.failed("sem destinatários")

            # attachments that vanished from disk are skipped, not fatal
            files = [p for p in (attachments or []) if p and os.path.isfile(p)]

            msg = _build_mime_message(
                sender=self.st.sender,
                sender_name=self.st.sender_name,
                to_addrs=to_addrs,
                cc_addrs=cc_addrs,
                reply_to=reply_addrs,
                subject=resolve_subject(self.test_mode, subject),
                html_body=html_body,
                attachments=files,
            )
            self._deliver(msg, list(dict.fromkeys(to_addrs + cc_addrs)))
            return SendResult.sent()
        except Exception as e:
            logger.debug("smtp send failed", exc_info=True)
            return SendResult.failed(f"{type(e).__name__}: {e}")

    def _deliver(self, msg: EmailMessage, rcpts: List[str]) -> None:
        if self.st.smtp_port == 465:
            smtp_cls = smtplib.SMTP_SSL
        else:
            smtp_cls = smtplib.SMTP
        with smtp_cls(self.st.smtp_host, self.st.smtp_port, timeout=self.st.timeout_sec) as smtp:
            if smtp_cls is smtplib.SMTP and self.st.use_tls:
                smtp.starttls()
            if self.st.password:
                smtp.login(self.st.sender, self.st.password)
            smtp.send_message(msg, to_addrs=rcpts)
