import json
from pathlib import Path

from loguru import logger

from ..models.invoice import INVOICE_HEADERS, LINE_HEADERS

SYSTEM_PROMPT = f"""You are a finance data extraction agent. Input is JSON that contains a `markdown` field (sometimes the whole input is an array; use the first element). The markdown is an Indian GST invoice rendered as plain text with tables.

Output ONLY the JSON below (no prose, no explanations, no code fences):

{{
  "invoice": {{ /* keys exactly match the 'Invoices' sheet headers */ }},
  "line_items": [ /* array of objects exactly matching the 'Invoice Line Items' headers */ ]
}}

CRITICAL JSON RULES:
- Must be valid JSON syntax
- Use double quotes for all strings
- Escape special characters (\\n, \\", \\\\)
- No trailing commas
- No comments in the actual output
- If description contains quotes, escape them as \\"

Data Rules:
- Numbers: strip ₹ and commas; keep 2 decimals.
- Dates → YYYY-MM-DD; ack_date → YYYY-MM-DDTHH:mm:ss if present.
- invoice_key = supplier_gstin + "|" + invoice_number (idempotent).
- Invoice month like "Dec.24" → 2024-12.
- Parse CGST/SGST/IGST rates/amounts. Totals check within ₹0.10.
- Place of supply: extract state + code in parentheses.
- HSN list: unique codes joined by commas.
- Bank last4: last 4 digits of account number.
- Line items: include only charge rows (ignore subtotal/tax/rounding/total/balance rows). If qty/unit missing, use "".
- Allocate taxes to lines proportionally to line_amount; round to 2 decimals; adjust the LAST line so column sums match the invoice totals.

Headers to match exactly:

Invoices:
{','.join(INVOICE_HEADERS)}

Invoice Line Items:
{','.join(LINE_HEADERS)}

If a field is unknown, return an empty string "" (not null).

For problematic content, simplify descriptions and avoid special characters that could break JSON."""

STRICT_OBJECT_SUFFIX = "\n\nIMPORTANT: Respond with ONLY minified JSON. No prose, no code fences."
STRICT_ARRAY_SUFFIX = "\n\nIMPORTANT: Respond with ONLY minified JSON array. No prose, no code fences."

PROMPT_FILE_NAME = "PROMPT_SYSTEM.md"


def build_prompt(markdown: str) -> str:
    payload = json.dumps({"markdown": markdown}, indent=2, ensure_ascii=False)
    return (
        "You will receive invoice markdown in the incoming JSON.\n\n"
        "Parse and normalize per the System message.\n"
        'Return ONLY the JSON object with "invoice" and "line_items" (no extra text).\n\n'
        "Return only valid minified JSON. No code fences, no comments, no explanations.\n\n"
        f"Input JSON:\n{payload}"
    )


def build_batch_prompt(markdowns: list[str]) -> str:
    payload = json.dumps({"markdown": markdowns}, indent=2, ensure_ascii=False)
    return (
        "You will receive multiple invoice markdowns in the incoming JSON array.\n\n"
        "Each element is one invoice's markdown. Parse and normalize each per the System message.\n"
        'Return ONLY a JSON array where each element is an object with keys "invoice" and "line_items". '
        "No extra text.\n\n"
        "Return only valid minified JSON. No code fences, no comments, no explanations.\n\n"
        f"Input JSON:\n{payload}"
    )


# path -> (mtime, content)
_prompt_cache: dict[str, tuple[float, str]] = {}


def _candidate_paths(override: str | None) -> list[Path]:
    candidates = []
    if override and override.strip():
        candidates.append(Path(override).expanduser().resolve())
    candidates.append(Path(__file__).with_name(PROMPT_FILE_NAME))
    return candidates


def load_system_prompt(override_path: str | None = None) -> str:
    """
    Return the system prompt, preferring an editable prompt file.

    Files are re-read only when their mtime changes. Without any prompt file
    the built-in SYSTEM_PROMPT is used.
    """
    for path in _candidate_paths(override_path):
        if not path.is_file():
            continue
        mtime = path.stat().st_mtime
        cached = _prompt_cache.get(str(path))
        if cached and cached[0] == mtime:
            return cached[1]
        content = path.read_text(encoding="utf-8").strip()
        if not content:
            continue
        _prompt_cache[str(path)] = (mtime, content)
        logger.info("Loaded system prompt from file", path=str(path))
        return content
    return SYSTEM_PROMPT
