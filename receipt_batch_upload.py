#!/usr/bin/env python3
"""
Batch upload receipts to the extraction API.

Posts every receipt in a folder (or the files given) to /receipts/extract,
one request per file, and prints what was extracted. A failed file is
reported and skipped; it never stops the rest of the batch.

Usage:
    python receipt_batch_upload.py ./receipts --api-base-url http://127.0.0.1:8000
    python receipt_batch_upload.py a.pdf b.jpg --concurrency 2 --summary results.json
"""

import argparse
import asyncio
import base64
import json
import sys
from pathlib import Path

import httpx

# Configuration
API_BASE_URL = "http://127.0.0.1:8000"
DEFAULT_CONCURRENCY = 4
DEFAULT_TIMEOUT_SECONDS = 120.0

RECEIPT_MIME_TYPES = {
    ".pdf": "application/pdf",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
}


def collect_receipts(paths: list[Path]) -> list[Path]:
    """Expand folders into the receipt files they contain (non-recursive, sorted)."""
    receipts = []
    for path in paths:
        if path.is_dir():
            receipts.extend(
                p for p in sorted(path.iterdir())
                if p.is_file() and p.suffix.lower() in RECEIPT_MIME_TYPES
            )
        elif path.suffix.lower() in RECEIPT_MIME_TYPES:
            receipts.append(path)
        else:
            print(f"⚠️  Skipping unsupported file: {path}")
    return receipts


def build_request_body(file_path: Path) -> dict:
    """Encode a receipt file the way the extract endpoint expects it"""
    mime_type = RECEIPT_MIME_TYPES[file_path.suffix.lower()]
    encoded = base64.b64encode(file_path.read_bytes()).decode("ascii")

    if mime_type == "application/pdf":
        return {"fileBase64": encoded, "fileName": file_path.name, "mimeType": mime_type}
    return {"imageDataUrl": f"data:{mime_type};base64,{encoded}"}


async def upload_receipt(client: httpx.AsyncClient, file_path: Path, semaphore: asyncio.Semaphore) -> dict:
    """Upload one receipt and return its outcome; errors are captured, not raised"""
    outcome = {"file": str(file_path), "ok": False, "status_code": None, "result": None, "error": None}

    async with semaphore:
        try:
            response = await client.post("/receipts/extract", json=build_request_body(file_path))
        except (httpx.HTTPError, OSError) as e:
            outcome["error"] = f"{type(e).__name__}: {e}"
            return outcome

    outcome["status_code"] = response.status_code
    try:
        data = response.json()
    except ValueError:
        outcome["error"] = f"Non-JSON response: {response.text[:200]}"
        return outcome

    if response.status_code == 200 and data.get("ok"):
        outcome["ok"] = True
        outcome["model_used"] = data.get("model_used")
        outcome["result"] = data.get("result")
    else:
        outcome["error"] = data.get("error") or response.text[:200]
    return outcome


async def upload_batch(
    files: list[Path],
    api_base_url: str = API_BASE_URL,
    concurrency: int = DEFAULT_CONCURRENCY,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> list[dict]:
    """Upload receipts concurrently (bounded) and return outcomes in input order"""
    semaphore = asyncio.Semaphore(max(1, concurrency))
    async with httpx.AsyncClient(base_url=api_base_url, timeout=timeout) as client:
        return await asyncio.gather(*(upload_receipt(client, f, semaphore) for f in files))


def print_outcome(outcome: dict) -> None:
    name = Path(outcome["file"]).name
    if outcome["ok"]:
        r = outcome["result"] or {}
        confidence = r.get("confidence")
        confidence_text = f"{confidence:.0%}" if isinstance(confidence, (int, float)) else "n/a"
        print(
            f"✅ {name}: {r.get('vendor') or 'Unknown vendor'} | {r.get('receipt_date') or 'no date'} | "
            f"{r.get('currency') or ''} {r.get('total') if r.get('total') is not None else '?'} | "
            f"{r.get('category_suggested') or 'Uncategorized'} (confidence: {confidence_text})"
        )
    else:
        status = outcome["status_code"] if outcome["status_code"] is not None else "no response"
        print(f"❌ {name}: {status} - {outcome['error']}")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Upload receipts to the extraction API, one request per file")
    parser.add_argument("paths", nargs="+", type=Path, help="Receipt files and/or folders")
    parser.add_argument("--api-base-url", default=API_BASE_URL, help=f"API base URL (default: {API_BASE_URL})")
    parser.add_argument("--concurrency", type=int, default=DEFAULT_CONCURRENCY, help="Parallel uploads")
    parser.add_argument("--timeout", type=float, default=DEFAULT_TIMEOUT_SECONDS, help="Per-request timeout (s)")
    parser.add_argument("--summary", type=Path, help="Write all outcomes to this JSON file")
    args = parser.parse_args(argv)

    files = collect_receipts(args.paths)
    if not files:
        print("No receipts found.")
        return 1

    print("=" * 70)
    print(f"Uploading {len(files)} receipt(s) to {args.api_base_url}")
    print("=" * 70)

    outcomes = asyncio.run(upload_batch(files, args.api_base_url, args.concurrency, args.timeout))
    for outcome in outcomes:
        print_outcome(outcome)

    succeeded = sum(1 for o in outcomes if o["ok"])
    print("-" * 70)
    print(f"Done: {succeeded} extracted, {len(outcomes) - succeeded} failed")

    if args.summary:
        args.summary.write_text(json.dumps(outcomes, indent=2))
        print(f"Summary written to {args.summary}")

    return 0 if succeeded == len(outcomes) else 2


if __name__ == "__main__":
    sys.exit(main())
