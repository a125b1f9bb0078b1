#!/usr/bin/env python3
"""
Collections Case Import Tool

Normalizes CRM case exports (CSV or Excel) into canonical case records,
fills the derived financial fields, and upserts them into a client's case store.

Usage:
    python3 case_import.py --file <cases.xlsx> --client <client-id> [--store <portal_store.json>] [--export <out.csv>]
"""
import argparse
import logging
import math
import os
import re
import sys
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import NamedTuple

import pandas as pd

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(levelname)s: %(message)s'
)
logger = logging.getLogger(__name__)

# ------------------------- Parameters & Aliases -------------------------

# Amount comparison tolerance (half a cent, floating point noise)
AMOUNT_TOL = 0.005

# Spreadsheet serial dates: 25569 is 1970-01-01 under the 1900 date system
EXCEL_SERIAL_EPOCH = date(1899, 12, 30)
EXCEL_SERIAL_MIN = 25569
EXCEL_SERIAL_MAX = (date.max - EXCEL_SERIAL_EPOCH).days

SUPPORTED_EXTENSIONS = {".csv", ".xlsx", ".xls"}

CASE_STATUSES = ["New", "Open", "In Progress", "On Hold", "Closed", "Paid"]
DEFAULT_CURRENCY = "USD"
UNKNOWN_CLIENT = "Unknown Client"
UNKNOWN_DEBTOR = "Unknown Debtor"

NA_TOKENS = {"n/a"}
CURRENCY_SYMBOLS = re.compile(r"[,$£€¥%]")
WHITESPACE = re.compile(r"\s+")

CASE_ID_ALIASES = ["Case ID", "CaseId", "ID", "CaseID"]

# Canonical field -> header aliases, first match wins
TEXT_FIELDS = {
    "reference": ["CRM Case ID", "Reference", "Client Reference"],
    "client_name": ["Client Name", "Client"],
    "customer_contact_name": ["Customer Contact Name"],
    "customer_contact_email": ["Customer Contact Email"],
    "customer_address1": ["Customer Address 1"],
    "customer_address2": ["Customer Address 2"],
    "debtor_name": ["Debtor Name", "Debtor"],
    "debtor_address1": ["Debtor Address 1"],
    "debtor_address2": ["Debtor Address 2"],
    "debtor_city": ["Debtor City"],
    "debtor_state": ["Debtor State"],
    "debtor_zip": ["Debtor Zip", "Debtor Postal Code"],
    "debtor_country": ["Debtor Country"],
    "debtor_phone": ["Debtor Phone"],
    "debtor_email": ["Debtor Email"],
    "language": ["Language"],
    "stage": ["Stage", "Substatus"],
    "collector": ["Collector", "Collector ID", "Debt Collector"],
    "collector_name": ["Collector Name", "Debt Collector"],
    "collector_email": ["Collector Email"],
    "next_action": ["Next Action"],
    "next_action_date": ["Next Action Date"],
    "notes": ["Notes", "Comments"],
}

DATE_FIELDS = {
    "opened_date": ["Creation Date", "Created Date", "Date Opened", "Opened", "Case Entry Date"],
    "due_date": ["Due Date"],
    "last_activity_date": ["Last Activity", "Last Update"],
    "last_payment_date": ["Last Payment Date"],
}

# Primitive amounts: a present cell always replaces the stored value
NUMBER_FIELDS = {
    "principal_amount": ["Principal", "Principal Amount"],
    "interest_amount": ["Interest"],
    "fees_before_submission": ["Fees Before Submission"],
    "fees_after_submission": ["Fees After Submission"],
    "collected_amount": ["Paid", "Collected", "Amount Collected"],
    "last_payment_amount": ["Last Payment Amount"],
    "age_in_months": ["Age in Months", "Age"],
}

# Derived amounts: only a non-zero cell counts as a source value
DERIVED_FIELDS = {
    "fees_amount": ["Fees", "Fees Amount", "Total Fees"],
    "total_amount_due": ["Total Amount Due", "Total Due"],
    "balance_amount": ["Balance"],
    "collection_rate": ["Collection Rate"],
}

# Only consulted when a case is first created
DEBTOR_FALLBACK_ALIASES = ["Customer Contact Name"]

STATUS_ALIASES = ["Case Status", "Status"]
CURRENCY_ALIASES = ["Currency"]

FIELD_ALIASES = {
    "case_id": CASE_ID_ALIASES,
    **TEXT_FIELDS,
    **DATE_FIELDS,
    **NUMBER_FIELDS,
    **DERIVED_FIELDS,
    "status": STATUS_ALIASES,
    "currency": CURRENCY_ALIASES,
}

CURRENCY_CODES = {
    "US$": "USD", "$": "USD", "USD": "USD",
    "GBP": "GBP", "£": "GBP",
    "EUR": "EUR", "€": "EUR",
    "JPY": "JPY", "¥": "JPY",
    "CAD": "CAD", "AUD": "AUD", "CHF": "CHF", "CNY": "CNY",
    "INR": "INR", "BRL": "BRL", "ZAR": "ZAR", "MXN": "MXN",
}


class ImportResult(NamedTuple):
    cases: list
    imported_count: int
    skipped_count: int


# ------------------------- Field Normalizer -------------------------

def header_key(name):
    return WHITESPACE.sub("", str(name)).lower()

def is_blank(value):
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT or value is pd.NA:
        return True
    return isinstance(value, str) and not value.strip()

def value_from(row, aliases):
    """
    Look up a cell by header alias.

    Headers match case-insensitively and ignoring whitespace. Aliases are tried
    in order and the first one holding a non-empty value wins.

    Args:
        row: Mapping of raw header -> raw cell value
        aliases: Ordered list of acceptable headers

    Returns:
        The raw cell value, or None when no alias matches a non-empty cell
    """
    keyed = {}
    for header in row:
        keyed.setdefault(header_key(header), header)
    for alias in aliases:
        header = keyed.get(header_key(alias))
        if header is not None and not is_blank(row[header]):
            return row[header]
    return None

def string_from(row, aliases, fallback=""):
    val = value_from(row, aliases)
    if val is None:
        return fallback
    # Excel numeric columns with a blank cell come back as float: 1001.0 -> "1001"
    if isinstance(val, float) and val.is_integer():
        val = int(val)
    return str(val).strip()

def is_na(value):
    return isinstance(value, str) and value.strip().lower() in NA_TOKENS

def number_from(value):
    """Coerce a cell to float. Blank, N/A and unparseable cells are 0.0."""
    if is_blank(value) or is_na(value):
        return 0.0
    if isinstance(value, bool):
        return float(value)
    try:
        n = float(CURRENCY_SYMBOLS.sub("", str(value)).strip())
    except ValueError:
        return 0.0
    return n if math.isfinite(n) else 0.0

def _serial_number(value):
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    try:
        return float(str(value).strip())
    except ValueError:
        return None

def date_from(value):
    """
    Coerce a cell to an ISO date string.

    Spreadsheet serials above 25569 count days from 1899-12-30. Anything else
    goes through pandas date parsing; if that fails the raw trimmed text is
    returned unchanged so nothing downstream has to handle an exception.
    """
    if is_blank(value):
        return ""
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()

    serial = _serial_number(value)
    # compact dates like 20240115 and stray ids are past the last serial
    if serial is not None and math.isfinite(serial) and EXCEL_SERIAL_MIN < serial <= EXCEL_SERIAL_MAX:
        return (EXCEL_SERIAL_EPOCH + timedelta(days=int(serial))).isoformat()

    raw = str(value).strip()
    try:
        parsed = pd.to_datetime(raw, errors="coerce")
    except (ValueError, TypeError, OverflowError):
        parsed = pd.NaT
    if pd.isna(parsed):
        return raw
    return parsed.date().isoformat()

def normalize_status(value):
    # "paid" is checked before "hold": "Paid - On Hold" classifies as Paid
    v = "" if is_blank(value) else str(value).lower().strip()
    if "paid" in v:
        return "Paid"
    if "close" in v:
        return "Closed"
    if "hold" in v:
        return "On Hold"
    if "progress" in v:
        return "In Progress"
    if v == "open" or "active" in v:
        return "Open"
    return "New"

def normalize_currency_code(value):
    if is_blank(value):
        return DEFAULT_CURRENCY
    code = str(value).strip().upper()
    if code in CURRENCY_CODES:
        return CURRENCY_CODES[code]
    for key, iso in CURRENCY_CODES.items():
        if key in code:
            return iso
    return DEFAULT_CURRENCY

# ------------------------- Derived-Field Reconciler -------------------------

def _nonzero(x):
    return x is not None and abs(x) > AMOUNT_TOL

def _same(a, b):
    return a is not None and b is not None and abs(a - b) <= AMOUNT_TOL

def _formula_fees(rec):
    return (rec.get("fees_before_submission") or 0.0) + (rec.get("fees_after_submission") or 0.0)

def _formula_total(rec, fees):
    return (rec.get("principal_amount") or 0.0) + (rec.get("interest_amount") or 0.0) + fees

def _formula_rate(collected, total):
    if total > 0:
        return 100.0 * collected / total
    return 0.0

def _source_values(prior):
    """
    Derived values on a stored record that came from the source file.

    A stored derived value equal to its own formula was computed here and is
    recomputed on the next import; one that disagrees was supplied explicitly
    and is carried forward.
    """
    if not prior:
        return {}
    out = {}
    fees = _formula_fees(prior)
    if _nonzero(prior.get("fees_amount")) and not _same(prior["fees_amount"], fees):
        out["fees_amount"] = prior["fees_amount"]
    resolved_fees = out.get("fees_amount", fees)
    total = _formula_total(prior, resolved_fees)
    if _nonzero(prior.get("total_amount_due")) and not _same(prior["total_amount_due"], total):
        out["total_amount_due"] = prior["total_amount_due"]
    resolved_total = out.get("total_amount_due", total)
    collected = prior.get("collected_amount") or 0.0
    balance = resolved_total - collected
    if _nonzero(prior.get("balance_amount")) and not _same(prior["balance_amount"], balance):
        out["balance_amount"] = prior["balance_amount"]
    rate = _formula_rate(collected, resolved_total)
    if _nonzero(prior.get("collection_rate")) and not _same(prior["collection_rate"], rate):
        out["collection_rate"] = prior["collection_rate"]
    return out

def resolve_financials(current, prior=None, explicit=None):
    """
    Fill fees_amount, total_amount_due, balance_amount and collection_rate.

    Each derived field resolves in order: explicit non-zero value from the
    current row, source-supplied value on the prior record, then the formula
    over the fields already resolved for this record.

    Args:
        current: Record with the primitive amounts already resolved
        prior: Previously stored record for the same case, if any
        explicit: Derived values read from the current row (field -> float).
            Defaults to the derived values already on `current`, which makes
            the function idempotent on a resolved record.

    Returns:
        A new dict with the derived fields set
    """
    rec = dict(current)
    if explicit is None:
        explicit = {k: rec.get(k) for k in DERIVED_FIELDS}
    carried = _source_values(prior)

    def pick(field, formula):
        if _nonzero(explicit.get(field)):
            return float(explicit[field])
        if field in carried:
            return float(carried[field])
        return formula

    for field in ("principal_amount", "interest_amount", "fees_before_submission",
                  "fees_after_submission", "collected_amount"):
        rec[field] = float(rec.get(field) or 0.0)

    rec["fees_amount"] = pick("fees_amount", _formula_fees(rec))
    rec["total_amount_due"] = pick("total_amount_due", _formula_total(rec, rec["fees_amount"]))
    rec["balance_amount"] = pick("balance_amount", rec["total_amount_due"] - rec["collected_amount"])
    rec["collection_rate"] = pick("collection_rate",
                                  _formula_rate(rec["collected_amount"], rec["total_amount_due"]))
    return rec

# ------------------------- Case Upsert Merger -------------------------

def normalize_row(row, base):
    """
    Overlay one raw row onto a base record.

    Present, non-empty cells replace the base value; absent cells keep it.
    A primitive amount written as 0 in the file counts as present.

    Returns:
        tuple: (record, explicit_derived)
    """
    rec = dict(base)

    for field, aliases in TEXT_FIELDS.items():
        val = string_from(row, aliases)
        if val:
            rec[field] = val

    for field, aliases in DATE_FIELDS.items():
        raw = value_from(row, aliases)
        if raw is not None:
            rec[field] = date_from(raw)

    for field, aliases in NUMBER_FIELDS.items():
        raw = value_from(row, aliases)
        if raw is not None and not is_na(raw):
            rec[field] = number_from(raw)

    explicit = {field: number_from(value_from(row, aliases)) for field, aliases in DERIVED_FIELDS.items()}

    raw_status = value_from(row, STATUS_ALIASES)
    if raw_status is not None:
        rec["status"] = normalize_status(raw_status)

    raw_currency = value_from(row, CURRENCY_ALIASES)
    if raw_currency is not None:
        rec["currency"] = normalize_currency_code(raw_currency)

    return rec, explicit

def new_case(case_id, client_id, row=None):
    return {
        "case_id": case_id,
        "client_id": client_id,
        "client_name": UNKNOWN_CLIENT,
        "debtor_name": string_from(row or {}, DEBTOR_FALLBACK_ALIASES, UNKNOWN_DEBTOR),
        "principal_amount": 0.0,
        "collected_amount": 0.0,
        "status": "New",
        "currency": DEFAULT_CURRENCY,
    }

def case_sort_key(case):
    # case-folded ordinal order instead of locale collation, see DESIGN.md "Sort order"
    cid = str(case.get("case_id", ""))
    return (cid.casefold(), cid)

def merge_rows(rows, existing_cases, client_id):
    """
    Upsert normalized rows into one client's case collection.

    Args:
        rows: Iterable of raw row mappings (header -> cell)
        existing_cases: Current case records for this client
        client_id: Owner of the collection

    Returns:
        ImportResult: (cases sorted by case id, imported_count, skipped_count)
    """
    case_by_id = {str(c["case_id"]): c for c in existing_cases}
    imported_count = 0
    skipped_count = 0

    for i, row in enumerate(rows, start=1):
        case_id = string_from(row, CASE_ID_ALIASES)
        if not case_id:
            skipped_count += 1
            logger.debug(f"Row {i}: skipped - no case id")
            continue

        existing = case_by_id.get(case_id)
        base = existing if existing is not None else new_case(case_id, client_id, row)
        rec, explicit = normalize_row(row, base)
        rec["case_id"] = case_id
        rec.setdefault("client_id", client_id)
        rec.setdefault("currency", DEFAULT_CURRENCY)

        case_by_id[case_id] = resolve_financials(rec, prior=existing, explicit=explicit)
        imported_count += 1

    if skipped_count:
        logger.warning(f"⚠️  Skipped {skipped_count} row(s) without a case id")

    cases = sorted(case_by_id.values(), key=case_sort_key)
    return ImportResult(cases, imported_count, skipped_count)

# ------------------------- Loaders -------------------------

def validate_file_exists(file_path):
    """
    Validate that the input file exists and is readable.

    Raises:
        FileNotFoundError: If file doesn't exist
        ValueError: If the path is not a file
        PermissionError: If file isn't readable
    """
    path = Path(file_path)
    if not path.exists():
        logger.error(f"File not found: {file_path}")
        raise FileNotFoundError(f"Input file does not exist: {file_path}")
    if not path.is_file():
        logger.error(f"Path is not a file: {file_path}")
        raise ValueError(f"Path is not a file: {file_path}")
    if not os.access(file_path, os.R_OK):
        logger.error(f"File is not readable: {file_path}")
        raise PermissionError(f"File is not readable: {file_path}")
    logger.info(f"✓ File validated: {path.name}")

def frame_to_rows(df):
    df = df.astype(object).where(pd.notna(df), None)
    return df.to_dict(orient="records")

def load_rows(source, name=None):
    """
    Read the first sheet of a CSV or Excel file into raw row dicts.

    Args:
        source: Path or binary file-like object
        name: File name used to pick the reader when `source` has none

    Returns:
        List of row dicts. Unsupported or empty files give an empty list.
    """
    name = str(name or source)
    ext = Path(name).suffix.lower()
    if ext not in SUPPORTED_EXTENSIONS:
        logger.warning(f"Unsupported file type '{ext or name}' - expected one of {sorted(SUPPORTED_EXTENSIONS)}")
        return []

    try:
        if ext == ".csv":
            df = pd.read_csv(source, dtype=object, skip_blank_lines=True)
        else:
            df = pd.read_excel(source, sheet_name=0)
    except pd.errors.EmptyDataError:
        df = pd.DataFrame()

    df = df.dropna(how="all")
    if df.empty:
        logger.warning(f"No rows found in {Path(name).name}. File might be empty or incorrectly formatted.")
        return []

    logger.info(f"  Loaded {len(df)} rows from {'CSV' if ext == '.csv' else 'Excel'} file")
    logger.debug(f"  Available columns: {list(df.columns)}")
    keys = {header_key(c) for c in df.columns}
    if not keys.intersection(header_key(a) for a in CASE_ID_ALIASES):
        logger.warning(f"No case id column found. Expected one of {CASE_ID_ALIASES}, available: {list(df.columns)}")
    return frame_to_rows(df)

def import_cases_from_file(source, existing_cases, client_id, name=None):
    """Load a CRM export and upsert it into `existing_cases`."""
    rows = load_rows(source, name=name)
    result = merge_rows(rows, existing_cases, client_id)
    logger.info(f"📋 Imported {result.imported_count} row(s), skipped {result.skipped_count}, "
                f"{len(result.cases)} case(s) for client {client_id}")
    return result

# ------------------------- CLI -------------------------

def run(file_path, client_id, store_path, export_path=None):
    from case_export import export_cases_to_csv
    from case_store import JsonFileStore

    validate_file_exists(file_path)
    store = JsonFileStore(store_path)
    state = store.load(client_id)
    result = import_cases_from_file(file_path, state["cases"], client_id)
    store.save_cases(result.cases, client_id)
    logger.info(f"✓ Store updated: {store_path}")

    if export_path:
        Path(export_path).write_text(export_cases_to_csv(result.cases), encoding="utf-8")
        logger.info(f"✓ Export written to: {export_path}")
    return result


def main(argv=None):
    ap = argparse.ArgumentParser(
        description="Import a CRM case export into the client portal store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 case_import.py --file cases.xlsx --client client-001
  python3 case_import.py --file cases.csv --client client-002 --export cases_out.csv
        """
    )
    ap.add_argument("--file", required=True, help="Path to CSV or Excel case export")
    ap.add_argument("--client", required=True, help="Client id that owns the imported cases")
    ap.add_argument("--store", default=os.environ.get("PORTAL_STORE_PATH", "portal_store.json"),
                    help="Path to the portal JSON store (default: $PORTAL_STORE_PATH or portal_store.json)")
    ap.add_argument("--export", default=None, help="Optional CSV path to write the client's cases after import")
    ap.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")

    args = ap.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        run(args.file, args.client, args.store, args.export)
        return 0
    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        return 1
    except (ValueError, PermissionError) as e:
        logger.error(f"Validation error: {e}")
        return 1
    except Exception as e:
        logger.error(f"Unexpected error: {e}")
        logger.exception("Full traceback:")
        return 1


if __name__ == "__main__":
    sys.exit(main())
