"""
Dashboard and report figures for the client portal.

Every figure reads the resolved financial fields on the case records; nothing
here recomputes totals or balances.
"""
import math

import pandas as pd

from case_import import CASE_STATUSES, normalize_currency_code

ITEMS_PER_PAGE = 10
LATEST_COUNT = 5
TREND_MONTHS = 6

AGE_BUCKETS = ["0-3 months", "3-6 months", "6-12 months", "12+ months"]

STATUS_COLORS = {
    "Closed": "#10b981",
    "Paid": "#059669",
    "Open": "#3b82f6",
    "In Progress": "#8b5cf6",
    "On Hold": "#f59e0b",
    "New": "#94a3b8",
}

CURRENCY_SYMBOLS = {"USD": "$", "GBP": "£", "EUR": "€", "JPY": "¥"}


def format_currency(value, currency=None):
    code = normalize_currency_code(currency)
    symbol = CURRENCY_SYMBOLS.get(code)
    amount = float(value or 0.0)
    sign = "-" if amount < 0 else ""
    if symbol:
        return f"{sign}{symbol}{abs(amount):,.2f}"
    return f"{sign}{code} {abs(amount):,.2f}"

def cases_frame(cases):
    cols = ["case_id", "debtor_name", "client_name", "status", "collector", "collector_name",
            "collected_amount", "total_amount_due", "balance_amount", "age_in_months",
            "opened_date", "last_activity_date", "last_payment_date"]
    df = pd.DataFrame(list(cases), columns=cols)
    for col in ("collected_amount", "total_amount_due", "balance_amount", "age_in_months"):
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0)
    return df

def _activity_key(case):
    ts = pd.to_datetime(case.get("last_activity_date") or case.get("opened_date"), errors="coerce")
    return ts.value if pd.notna(ts) else -math.inf

def _created_key(message):
    ts = pd.to_datetime(message.get("created_at"), errors="coerce", utc=True)
    return ts.value if pd.notna(ts) else -math.inf

# ------------------------- Overview -------------------------

def status_summary(cases):
    df = cases_frame(cases)
    if df.empty:
        return pd.DataFrame(columns=["status", "cases", "amount"])
    out = df.groupby("status").agg(cases=("case_id", "count"), amount=("balance_amount", "sum")).reset_index()
    return out.sort_values("cases", ascending=False, kind="stable").reset_index(drop=True)

def overview_stats(cases, messages):
    """
    Headline figures for the overview tab.

    Returns:
        dict with total_outstanding, total_collected, total_due,
        collection_rate (whole percent), by_status (DataFrame),
        latest_cases, latest_messages and client_messages.
    """
    df = cases_frame(cases)
    total_due = float(df["total_amount_due"].sum())
    total_collected = float(df["collected_amount"].sum())
    return {
        "case_count": len(df),
        "total_outstanding": float(df["balance_amount"].sum()),
        "total_collected": total_collected,
        "total_due": total_due,
        "collection_rate": round(total_collected / total_due * 100) if total_due > 0 else 0,
        "by_status": status_summary(cases),
        "latest_cases": sorted(cases, key=_activity_key, reverse=True)[:LATEST_COUNT],
        "latest_messages": sorted(messages, key=_created_key, reverse=True)[:LATEST_COUNT],
        "client_messages": sum(1 for m in messages if m.get("author") == "Client"),
    }

# ------------------------- Reports -------------------------

def age_bucket(age):
    age = age or 0
    if age < 3:
        return AGE_BUCKETS[0]
    if age < 6:
        return AGE_BUCKETS[1]
    if age < 12:
        return AGE_BUCKETS[2]
    return AGE_BUCKETS[3]

def age_report(cases):
    df = cases_frame(cases)
    df["age_group"] = df["age_in_months"].map(age_bucket)
    out = df.groupby("age_group").agg(cases=("case_id", "count"), amount=("balance_amount", "sum"))
    out = out.reindex([b for b in AGE_BUCKETS if b in out.index]).rename_axis("age_group")
    return out.reset_index()

def collector_report(cases):
    """
    Case count, collected and outstanding per collector, best collector first.

    The rate is the share of the collector's book already collected.
    """
    df = cases_frame(cases)
    if df.empty:
        return pd.DataFrame(columns=["collector", "cases", "collected", "outstanding", "rate"])
    name = df["collector_name"].where(df["collector_name"].fillna("").astype(str).str.strip() != "", df["collector"])
    df["collector"] = name.where(name.fillna("").astype(str).str.strip() != "", "Unassigned")
    out = df.groupby("collector").agg(
        cases=("case_id", "count"),
        collected=("collected_amount", "sum"),
        outstanding=("balance_amount", "sum"),
    ).reset_index()
    book = out["collected"] + out["outstanding"]
    out["rate"] = (out["collected"] / book.where(book > 0) * 100).fillna(0.0).round(1)
    return out.sort_values("collected", ascending=False, kind="stable").reset_index(drop=True)

def collection_trend(cases, months=TREND_MONTHS):
    df = cases_frame(cases)
    df["paid_on"] = pd.to_datetime(df["last_payment_date"], errors="coerce")
    df = df[df["paid_on"].notna()]
    if df.empty:
        return pd.DataFrame(columns=["month", "collected", "cases"])
    df["period"] = df["paid_on"].dt.to_period("M")
    out = df.groupby("period").agg(collected=("collected_amount", "sum"), cases=("case_id", "count"))
    out = out.sort_index().tail(months).reset_index()
    out["month"] = out["period"].dt.strftime("%b %Y")
    return out[["month", "collected", "cases"]]

def status_distribution(cases):
    counts = {}
    for c in cases:
        counts[c.get("status", "New")] = counts.get(c.get("status", "New"), 0) + 1
    order = [s for s in CASE_STATUSES if s in counts] + [s for s in counts if s not in CASE_STATUSES]
    return [{"name": s, "value": counts[s], "color": STATUS_COLORS.get(s, "#94a3b8")} for s in order]

# ------------------------- Case table -------------------------

def filter_cases(cases, search="", status="all"):
    needle = (search or "").strip().lower()
    out = []
    for c in cases:
        if status not in (None, "", "all") and c.get("status") != status:
            continue
        if needle:
            hay = " ".join(str(c.get(k, "")) for k in ("case_id", "debtor_name", "client_name")).lower()
            if needle not in hay:
                continue
        out.append(c)
    return out

def paginate(items, page=1, per_page=ITEMS_PER_PAGE):
    """
    Slice one page out of `items`.

    Returns:
        tuple: (page_items, page, total_pages) with page clamped into range
    """
    total_pages = max(1, math.ceil(len(items) / per_page))
    page = min(max(1, int(page)), total_pages)
    start = (page - 1) * per_page
    return items[start:start + per_page], page, total_pages

# ------------------------- Messages -------------------------

def group_messages(cases, messages, author="all", search=""):
    """
    Messages grouped per case, newest first, conversations ordered by latest message.

    Args:
        author: "all", "client" or "collector"
        search: Matches message body, case id or debtor name
    """
    needle = (search or "").strip().lower()
    wanted = {"client": "Client", "collector": "Collector"}.get(author)
    groups = []
    for c in cases:
        thread = [m for m in messages if m.get("case_id") == c.get("case_id")]
        if wanted:
            thread = [m for m in thread if m.get("author") == wanted]
        if needle:
            case_hit = needle in str(c.get("case_id", "")).lower() or needle in str(c.get("debtor_name", "")).lower()
            thread = [m for m in thread if case_hit or needle in str(m.get("body", "")).lower()]
        if thread:
            groups.append({"case": c, "messages": sorted(thread, key=_created_key, reverse=True)})
    groups.sort(key=lambda g: _created_key(g["messages"][0]), reverse=True)
    return groups

def case_thread(messages, case_id):
    return sorted((m for m in messages if m.get("case_id") == case_id), key=_created_key)

def message_counts(messages):
    return {
        "total": len(messages),
        "client": sum(1 for m in messages if m.get("author") == "Client"),
        "collector": sum(1 for m in messages if m.get("author") == "Collector"),
        "unread": sum(1 for m in messages if not m.get("read")),
    }
