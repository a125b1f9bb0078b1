"""
Case and message export.

Writes one row per case with headers in the same order and spelling the
importer accepts, so an export can be re-imported without losing fields.
"""
import logging

import pandas as pd

from case_import import DEFAULT_CURRENCY, resolve_financials

logger = logging.getLogger(__name__)

# (header, record field, default)
CASE_EXPORT_COLUMNS = [
    ("Case ID", "case_id", ""),
    ("CRM Case ID", "reference", ""),
    ("Client Name", "client_name", ""),
    ("Customer Contact Name", "customer_contact_name", ""),
    ("Customer Contact Email", "customer_contact_email", ""),
    ("Customer Address 1", "customer_address1", ""),
    ("Customer Address 2", "customer_address2", ""),
    ("Debtor Name", "debtor_name", ""),
    ("Debtor Address 1", "debtor_address1", ""),
    ("Debtor Address 2", "debtor_address2", ""),
    ("Debtor City", "debtor_city", ""),
    ("Debtor State", "debtor_state", ""),
    ("Debtor Zip", "debtor_zip", ""),
    ("Debtor Country", "debtor_country", ""),
    ("Debtor Phone", "debtor_phone", ""),
    ("Debtor Email", "debtor_email", ""),
    ("Language", "language", ""),
    ("Creation Date", "opened_date", ""),
    ("Due Date", "due_date", ""),
    ("Last Activity", "last_activity_date", ""),
    ("Last Payment Date", "last_payment_date", ""),
    ("Last Payment Amount", "last_payment_amount", 0),
    ("Principal", "principal_amount", 0),
    ("Interest", "interest_amount", 0),
    ("Fees Before Submission", "fees_before_submission", 0),
    ("Fees After Submission", "fees_after_submission", 0),
    ("Total Amount Due", "total_amount_due", 0),
    ("Paid", "collected_amount", 0),
    ("Balance", "balance_amount", 0),
    ("Collection Rate", "collection_rate", 0),
    ("Case Status", "status", "New"),
    ("Stage", "stage", ""),
    ("Age in Months", "age_in_months", 0),
    ("Currency", "currency", DEFAULT_CURRENCY),
    ("Collector", "collector", ""),
    ("Collector Name", "collector_name", ""),
    ("Collector Email", "collector_email", ""),
    ("Next Action", "next_action", ""),
    ("Next Action Date", "next_action_date", ""),
    ("Notes", "notes", ""),
]

MONEY_COLUMNS = [
    "Last Payment Amount", "Principal", "Interest", "Fees Before Submission",
    "Fees After Submission", "Total Amount Due", "Paid", "Balance",
]

MESSAGE_EXPORT_COLUMNS = [
    ("Message ID", "id"),
    ("Case ID", "case_id"),
    ("Author", "author"),
    ("Created At", "created_at"),
    ("Body", "body"),
]


def cases_to_frame(cases):
    rows = []
    for case in cases:
        rec = resolve_financials(case)
        row = {}
        for header, field, default in CASE_EXPORT_COLUMNS:
            val = rec.get(field)
            row[header] = default if val is None else val
        rows.append(row)
    return pd.DataFrame(rows, columns=[h for h, _, _ in CASE_EXPORT_COLUMNS])

def messages_to_frame(messages):
    rows = [{header: m.get(field, "") for header, field in MESSAGE_EXPORT_COLUMNS} for m in messages]
    return pd.DataFrame(rows, columns=[h for h, _ in MESSAGE_EXPORT_COLUMNS])

def export_cases_to_csv(cases):
    return cases_to_frame(cases).to_csv(index=False)

def export_messages_to_csv(messages):
    return messages_to_frame(messages).to_csv(index=False)

def export_cases_to_excel(cases, out_path, messages=None):
    """
    Write cases (and optionally messages) to a formatted workbook.

    Args:
        cases: Case records to export
        out_path: Path or binary buffer for the .xlsx output
        messages: Optional messages written to a second sheet
    """
    df = cases_to_frame(cases)
    with pd.ExcelWriter(out_path, engine="xlsxwriter") as w:
        workbook = w.book
        currency_format = workbook.add_format({'num_format': '#,##0.00'})
        percent_format = workbook.add_format({'num_format': '0.0"%"'})
        header_format = workbook.add_format({'bold': True, 'bg_color': '#D7E4BC'})

        df.to_excel(w, sheet_name="Cases", index=False)
        worksheet = w.sheets["Cases"]
        for col_idx, header in enumerate(df.columns):
            worksheet.write(0, col_idx, header, header_format)
            if header in MONEY_COLUMNS:
                worksheet.set_column(col_idx, col_idx, 16, currency_format)
            elif header == "Collection Rate":
                worksheet.set_column(col_idx, col_idx, 14, percent_format)
            else:
                worksheet.set_column(col_idx, col_idx, 18)
        worksheet.freeze_panes(1, 1)

        if messages is not None:
            messages_to_frame(messages).to_excel(w, sheet_name="Messages", index=False)
            w.sheets["Messages"].set_column('E:E', 60)

    logger.info(f"✓ Exported {len(df)} case(s) to workbook")
