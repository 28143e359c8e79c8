from __future__ import annotations

import base64
from typing import Iterable, Tuple

import pytest

XSENSE_CSV = (
    "Temps,Température_Celsius,Humidité relative_Pourcentage\n"
    "2025/11/04 23:59,15.0,84.0\n"
    "2025/11/04 23:58,15.1,83.2\n"
    "2025/11/04 23:57,15.2,84.0\n"
).encode("utf-8")

XSENSE_FILENAME = "Thermo-cabane_Exporter les données_20251104.csv"

BOUNDARY = "HM-BOUNDARY-0001"


def base64_block(content: bytes) -> str:
    return base64.encodebytes(content).decode("ascii").strip().replace("\n", "\r\n")


def build_message(
    parts: Iterable[Tuple[str, str]],
    body: str = "Veuillez trouver ci-joint les données exportées.",
    subject: str = "X-Sense export",
    date: str = "Tue, 04 Nov 2025 23:59:00 +0000",
) -> bytes:
    """Build a CRLF multipart message; each part is (headers, payload)."""
    lines = [
        "From: X-Sense <noreply@x-sense.example>",
        "To: metrics@example.com",
        f"Subject: {subject}",
        f"Date: {date}",
        "MIME-Version: 1.0",
        f'Content-Type: multipart/mixed; boundary="{BOUNDARY}"',
        "",
        f"--{BOUNDARY}",
        "Content-Type: text/plain; charset=utf-8",
        "",
        body,
    ]
    for headers, payload in parts:
        lines.append(f"--{BOUNDARY}")
        lines.append(headers)
        lines.append("")
        lines.append(payload)
    lines.append(f"--{BOUNDARY}--")
    return ("\r\n".join(lines) + "\r\n").encode("utf-8")


def attachment_part(filename: str, content: bytes, encoding: str = "base64") -> Tuple[str, str]:
    headers = "\r\n".join([
        f'Content-Type: text/csv; name="{filename}"',
        f'Content-Disposition: attachment; filename="{filename}"',
        f"Content-Transfer-Encoding: {encoding}",
    ])
    if encoding == "base64":
        payload = base64_block(content)
    else:
        payload = content.decode("utf-8").replace("\n", "\r\n").strip()
    return headers, payload


@pytest.fixture()
def xsense_message() -> bytes:
    return build_message([attachment_part(XSENSE_FILENAME, XSENSE_CSV)])


@pytest.fixture()
def pool_message() -> bytes:
    body = (
        "Bonjour,\r\n\r\n"
        "Voici les dernières mesures de votre piscine:\r\n\r\n"
        "Température: 15,8°C\r\n"
        "pH: 6,80\r\n"
        "ORP: 249 mV\r\n\r\n"
        "Cordialement,\r\n"
        "Blue Riot"
    )
    return (
        "From: Blue Riot <noreply@blueriot.example>\r\n"
        "To: metrics@example.com\r\n"
        "Subject: =?utf-8?q?Mesures_de_votre_piscine?=\r\n"
        "Date: Wed, 05 Nov 2025 08:30:00 +0100\r\n"
        "MIME-Version: 1.0\r\n"
        "Content-Type: text/plain; charset=utf-8\r\n"
        "Content-Transfer-Encoding: 8bit\r\n"
        "\r\n"
        f"{body}\r\n"
    ).encode("utf-8")
