"""
Résumé d'utilisation du stockage d'un événement (carte « Espace de stockage »).
- Quota illimité: sentinelle -1.
- Pourcentage affiché: au moins 2% dès qu'un octet est utilisé.
"""
from typing import Any, Dict, Optional

UNLIMITED = -1
KB = 1024
MB = 1024 * KB
GB = 1024 * MB


def is_unlimited(limit_bytes: Optional[int]) -> bool:
    return limit_bytes == UNLIMITED


def format_bytes(n: Optional[int]) -> str:
    if n == UNLIMITED:
        return "∞"
    n = int(n or 0)
    if n == 0:
        return "0 MB"
    if n >= GB:
        return f"{n / GB:.1f} GB"
    if n >= MB:
        return f"{n / MB:.0f} MB"
    return f"{n / KB:.0f} KB"


def storage_summary(used_bytes: Optional[int], limit_bytes: Optional[int]) -> Dict[str, Any]:
    used = int(used_bytes or 0)
    unlimited = is_unlimited(limit_bytes)
    # quota inconnu (None, 0 ou négatif): pas de jauge plutôt qu'un pourcentage absurde
    measurable = not unlimited and int(limit_bytes or 0) > 0
    percentage = used / int(limit_bytes) * 100 if measurable else 0.0
    display = max(percentage, 2.0) if used > 0 and measurable else percentage
    return {
        "used_bytes": used,
        "limit_bytes": limit_bytes,
        "unlimited": unlimited,
        "percentage": round(percentage, 2),
        "display_percentage": round(min(display, 100.0), 2),
        "used_label": format_bytes(used),
        "limit_label": format_bytes(limit_bytes),
    }
