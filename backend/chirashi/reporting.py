"""
End-of-run summary: per-store counts, logged and optionally emailed.
"""

import smtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart

from chirashi.config import Settings
from chirashi.logging_config import get_logger
from chirashi.pipeline import RunResult, StoreStats

logger = get_logger("reporting")

SKIP_LABELS = {
    "download_failed": "download failed",
    "too_small": "too small",
    "undecodable": "bad image",
    "rate_limited": "rate limited",
    "api_error": "API error",
    "unexpected": "unexpected error",
}


def format_duration(seconds: float) -> str:
    seconds = max(0, int(seconds))
    hours, rest = divmod(seconds, 3600)
    minutes, secs = divmod(rest, 60)
    if hours:
        return f"{hours}h {minutes}m"
    if minutes:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def build_store_line(stats: StoreStats) -> str:
    icon = "✅" if stats.products else "⚠️"
    line = (f"{icon} {stats.store_name} - {stats.products} products "
            f"({stats.images_extracted}/{stats.images_selected} images extracted, "
            f"{stats.images_found} found)")
    if stats.skipped:
        reasons = ", ".join(f"{SKIP_LABELS.get(k, k)}: {v}" for k, v in sorted(stats.skipped.items()))
        line += f" [skipped {reasons}]"
    if stats.locate_error:
        line += f" [locate error: {stats.locate_error[:80]}]"
    return line


def build_report(result: RunResult) -> str:
    snapshot = result.snapshot
    lines = [
        f"Flyer Price Scrape Summary - {snapshot.date.isoformat()}",
        "",
        f"⏰ Runtime: {result.started_at.astimezone().strftime('%H:%M:%S')} - "
        f"{result.finished_at.astimezone().strftime('%H:%M:%S')} "
        f"({format_duration(result.duration_seconds)})",
        "",
        "📊 Results:",
        f"Stores: {len(snapshot.stores)}",
        f"Total Products: {snapshot.product_count}",
        f"Images Extracted: {sum(s.images_extracted for s in result.stats)}",
        f"Images Skipped: {sum(s.images_skipped for s in result.stats)}",
        "",
        "By Store:",
    ]
    lines.extend(build_store_line(s) for s in result.stats)
    return "\n".join(lines)


def send_email(settings: Settings, subject: str, body: str) -> bool:
    """Send the summary if email settings are present. Returns True on success."""
    if not settings.email_configured:
        logger.info("Email credentials not set, skipping summary email")
        return False

    try:
        msg = MIMEMultipart()
        msg["From"] = settings.email_sender
        msg["To"] = settings.email_recipient
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain", "utf-8"))

        with smtplib.SMTP(settings.smtp_server, settings.smtp_port, timeout=30) as server:
            server.starttls()
            server.login(settings.email_sender, settings.email_password.replace(" ", ""))
            server.send_message(msg)

        logger.info(f"Summary email sent to {settings.email_recipient}")
        return True
    except (smtplib.SMTPException, OSError) as e:
        logger.error(f"Email failed: {e}")
        return False
