#!/usr/bin/env python3
"""
Client Collections Portal - Streamlit Interface
"""

import html
import os
import traceback
from datetime import datetime
from io import BytesIO

import pandas as pd
import streamlit as st

import case_export
import case_import
import portal_auth
import portal_reports
from case_store import DEFAULT_STORE_PATH, JsonFileStore, load_seed_file, new_message

SEED_PATH = os.environ.get("PORTAL_SEED_PATH", "cases-data.json")
TABS = ["Overview", "Cases", "Reports", "Messages", "Settings"]

def inject_custom_css():
    """Inject custom CSS for portal branding and card styling"""
    st.markdown("""
    <style>
    :root {
        --ink: #0f172a;
        --muted: #64748b;
        --accent: #10b981;
        --accent-light: #a7f3d0;
        --mint: #ecfdf5;
        --cloud: #f8fafc;
    }

    .main .block-container {
        padding-top: 2rem !important;
        max-width: 1200px !important;
    }

    .cp-header {
        padding: 1.25rem 1.5rem;
        background: white;
        border-radius: 16px;
        border: 1px solid #e2e8f0;
        margin-bottom: 1.5rem;
    }

    .cp-header h1 {
        color: var(--ink);
        font-size: 1.6rem;
        margin: 0;
    }

    .cp-header p {
        color: var(--muted);
        margin: 0.25rem 0 0 0;
    }

    .cp-pill {
        display: inline-block;
        padding: 0.2rem 0.7rem;
        border-radius: 999px;
        font-size: 0.8rem;
        font-weight: 600;
        margin-right: 0.4rem;
        color: white;
    }

    .cp-message {
        padding: 0.75rem 1rem;
        border-radius: 12px;
        margin-bottom: 0.5rem;
        background: var(--cloud);
        border: 1px solid #e2e8f0;
    }

    .cp-message.client {
        background: var(--mint);
        border-color: var(--accent-light);
    }
    </style>
    """, unsafe_allow_html=True)

def show_header(title, subtitle):
    st.markdown(f"""
    <div class="cp-header">
        <h1>{title}</h1>
        <p>{subtitle}</p>
    </div>
    """, unsafe_allow_html=True)

def create_status_pill(status):
    color = portal_reports.STATUS_COLORS.get(status, "#94a3b8")
    return f'<span class="cp-pill" style="background: {color};">{html.escape(str(status))}</span>'

def case_label_html(case):
    return f"**{html.escape(str(case['case_id']))}** · {html.escape(str(case.get('debtor_name', '')))}"

def message_html(message):
    """Chat bubble for one message. Author, timestamp and body are escaped."""
    css = "client" if message.get("author") == "Client" else ""
    stamp = str(message.get("created_at", ""))[:16].replace("T", " ")
    return (f'<div class="cp-message {css}"><strong>{html.escape(str(message.get("author", "")))}</strong> · '
            f'<small>{html.escape(stamp)}</small><br>{html.escape(str(message.get("body", "")))}</div>')

def get_store():
    if "store" not in st.session_state:
        st.session_state.store = JsonFileStore(DEFAULT_STORE_PATH)
    return st.session_state.store

def active_scope(store, user):
    """Client id the session reads and writes. Admins choose a client to act for."""
    scope = portal_auth.client_scope(user)
    if scope is not None:
        return scope
    clients = [u for u in portal_auth.all_users(store) if u.get("role") == "client"]
    if not clients:
        return user["id"]
    labels = {f"{u['name']} ({u['company_name']})": u["id"] for u in clients}
    choice = st.sidebar.selectbox("Acting for client", list(labels))
    return labels[choice]

def format_money(case, field):
    return portal_reports.format_currency(case.get(field), case.get("currency"))

# ------------------------- Sign-in -------------------------

def show_login(store):
    show_header("Client Portal", "Sign in to view your collection cases.")
    with st.form("login"):
        email = st.text_input("Email")
        password = st.text_input("Password", type="password")
        submitted = st.form_submit_button("Sign in", use_container_width=True, type="primary")
    if submitted:
        user = portal_auth.login(email, store, password)
        if user:
            st.session_state.user = user
            st.rerun()
        else:
            st.error("Invalid email or password")
    st.caption("Demo accounts: " + ", ".join(u["email"] for u in portal_auth.DEMO_USERS))

# ------------------------- Import / export -------------------------

def show_import(store, scope, cases, key):
    uploaded_file = st.file_uploader(
        "Import from CRM",
        type=["csv", "xlsx", "xls"],
        key=key,
        help="CSV or Excel export with one row per case. The case id column may be called Case ID, CaseId, ID or CaseID.",
    )
    if uploaded_file is None or not st.button("📥 Import cases", key=f"{key}_run", type="primary"):
        return

    try:
        with st.spinner("Importing cases..."):
            result = case_import.import_cases_from_file(
                BytesIO(uploaded_file.getvalue()), cases, scope, name=uploaded_file.name
            )
        if result.imported_count == 0 and result.skipped_count == 0:
            st.warning("⚠️ No rows found. The file might be empty or in an unsupported format.")
            return
        store.save_cases(result.cases, scope)
        st.success(f"✅ Imported {result.imported_count} row(s) into {len(result.cases)} case(s).")
        if result.skipped_count:
            st.warning(f"⚠️ Skipped {result.skipped_count} row(s) without a case id.")
        if result.cases and not st.session_state.get("selected_case"):
            st.session_state.selected_case = result.cases[0]["case_id"]
    except Exception as e:
        st.error(f"An error occurred during import: {str(e)}")
        with st.expander("🔍 Technical Details (for debugging)"):
            st.code(traceback.format_exc())

def export_buttons(cases, messages, key):
    stamp = datetime.now().strftime("%Y-%m-%d")
    col1, col2 = st.columns(2)
    with col1:
        st.download_button(
            label="⬇️ Export Cases (CSV)",
            data=case_export.export_cases_to_csv(cases),
            file_name=f"cases-{stamp}.csv",
            mime="text/csv",
            use_container_width=True,
            key=f"{key}_cases",
        )
    with col2:
        st.download_button(
            label="⬇️ Export Messages (CSV)",
            data=case_export.export_messages_to_csv(messages),
            file_name=f"messages-{stamp}.csv",
            mime="text/csv",
            use_container_width=True,
            key=f"{key}_messages",
        )

# ------------------------- Tabs -------------------------

def show_overview(store, user, scope, cases, messages):
    show_header(f"Hello, {html.escape(user['name'])}!", "Welcome back, here's an overview of your collection cases.")
    stats = portal_reports.overview_stats(cases, messages)

    col1, col2, col3 = st.columns(3)
    col1.metric("Outstanding", portal_reports.format_currency(stats["total_outstanding"]),
                help=f"Across {stats['case_count']} cases")
    col2.metric("Collected", portal_reports.format_currency(stats["total_collected"]),
                delta=f"{stats['collection_rate']}% collection rate", delta_color="off")
    col3.metric("Your messages", stats["client_messages"])

    if not stats["by_status"].empty:
        st.subheader("Cases by status")
        st.bar_chart(stats["by_status"].set_index("status")[["cases"]])

    left, right = st.columns(2)
    with left:
        st.subheader("Latest cases")
        for c in stats["latest_cases"]:
            st.markdown(f"{case_label_html(c)} {create_status_pill(c.get('status', 'New'))}",
                        unsafe_allow_html=True)
            st.caption(f"Balance {format_money(c, 'balance_amount')} · last activity {c.get('last_activity_date') or c.get('opened_date') or 'n/a'}")
    with right:
        st.subheader("Latest messages")
        if not stats["latest_messages"]:
            st.info("No messages yet")
        for m in stats["latest_messages"]:
            st.markdown(f"**{m['author']}** on {m['case_id']}: {m['body']}")

    with st.expander("Import or export data"):
        show_import(store, scope, cases, key="overview_import")
        export_buttons(cases, messages, key="overview_export")

def show_case_detail(store, scope, case, messages):
    st.markdown(f"### {html.escape(str(case['case_id']))} {create_status_pill(case.get('status', 'New'))}", unsafe_allow_html=True)
    col1, col2, col3, col4 = st.columns(4)
    col1.metric("Total due", format_money(case, "total_amount_due"))
    col2.metric("Collected", format_money(case, "collected_amount"))
    col3.metric("Balance", format_money(case, "balance_amount"))
    col4.metric("Collection rate", f"{case.get('collection_rate', 0.0):.1f}%")

    details = {
        "Debtor": case.get("debtor_name"),
        "Debtor email": case.get("debtor_email"),
        "Debtor phone": case.get("debtor_phone"),
        "Stage": case.get("stage"),
        "Collector": case.get("collector_name") or case.get("collector"),
        "Collector email": case.get("collector_email"),
        "Opened": case.get("opened_date"),
        "Due": case.get("due_date"),
        "Last payment": case.get("last_payment_date"),
        "Next action": case.get("next_action"),
        "Notes": case.get("notes"),
    }
    st.table(pd.DataFrame([(k, v) for k, v in details.items() if v], columns=["Field", "Value"]).set_index("Field"))

    st.markdown("**Conversation with your collector**")
    thread = portal_reports.case_thread(messages, case["case_id"])
    if not thread:
        st.info("No messages on this case yet")
    for m in thread:
        st.markdown(message_html(m), unsafe_allow_html=True)

    with st.form(f"send_{case['case_id']}", clear_on_submit=True):
        body = st.text_area("Ask your collector a question")
        if st.form_submit_button("Send message") and body.strip():
            store.save_messages(messages + [new_message(case["case_id"], body.strip())], scope)
            st.rerun()

def show_cases(store, scope, cases, messages):
    show_header("Cases", "Search, filter and open any case.")
    show_import(store, scope, cases, key="cases_import")

    col1, col2 = st.columns([3, 1])
    search = col1.text_input("Search cases...", placeholder="Case id, debtor or client")
    status = col2.selectbox("Status", ["all"] + case_import.CASE_STATUSES)
    filtered = portal_reports.filter_cases(cases, search, status)

    if not filtered:
        st.info("No cases found. " + ("Import from your CRM to see data." if not cases else "Try adjusting your search or filter."))
        return

    total_pages = portal_reports.paginate(filtered)[2]
    page = st.number_input("Page", min_value=1, max_value=total_pages, value=1, step=1) if total_pages > 1 else 1
    page_items, page, total_pages = portal_reports.paginate(filtered, page)
    start = (page - 1) * portal_reports.ITEMS_PER_PAGE
    st.caption(f"Showing {start + 1} to {start + len(page_items)} of {len(filtered)} cases")

    table = pd.DataFrame([{
        "Case ID": c["case_id"],
        "Debtor": c.get("debtor_name"),
        "Balance": format_money(c, "balance_amount"),
        "Collected": format_money(c, "collected_amount"),
        "Rate": f"{c.get('collection_rate', 0.0):.1f}%",
        "Status": c.get("status"),
        "Stage": c.get("stage", ""),
        "Opened": c.get("opened_date", ""),
    } for c in page_items])
    st.dataframe(table, use_container_width=True, hide_index=True)

    ids = [c["case_id"] for c in filtered]
    current = st.session_state.get("selected_case")
    selected = st.selectbox("Open case", ids, index=ids.index(current) if current in ids else 0)
    st.session_state.selected_case = selected
    show_case_detail(store, scope, next(c for c in cases if c["case_id"] == selected), messages)

def show_reports(cases):
    show_header("Reports", "Detailed insights into your collection cases and performance metrics.")
    if not cases:
        st.info("Import cases to see reports.")
        return

    col1, col2 = st.columns(2)
    with col1:
        st.subheader("Cases by age")
        st.bar_chart(portal_reports.age_report(cases).set_index("age_group")[["cases"]])
    with col2:
        st.subheader("Status distribution")
        dist = pd.DataFrame(portal_reports.status_distribution(cases))
        st.bar_chart(dist.set_index("name")[["value"]])

    st.subheader("Collection trend")
    trend = portal_reports.collection_trend(cases)
    if trend.empty:
        st.info("No payment dates recorded yet")
    else:
        st.line_chart(trend.set_index("month")[["collected"]])

    st.subheader("Performance by collector")
    collectors = portal_reports.collector_report(cases)
    st.dataframe(collectors, use_container_width=True, hide_index=True)

def show_messages(cases, messages):
    show_header("Messages", "View and manage all conversations across your cases.")
    counts = portal_reports.message_counts(messages)
    col1, col2, col3 = st.columns(3)
    col1.metric("All messages", counts["total"])
    col2.metric("Your messages", counts["client"])
    col3.metric("Collector replies", counts["collector"])

    author = st.radio("Show", ["all", "client", "collector"], horizontal=True,
                      format_func={"all": "All Messages", "client": "Your Messages", "collector": "Collector Messages"}.get)
    search = st.text_input("Search messages")
    groups = portal_reports.group_messages(cases, messages, author, search)
    if not groups:
        st.info("No conversations match")
    for group in groups:
        c = group["case"]
        with st.expander(f"{c['case_id']} · {c.get('debtor_name', '')} ({len(group['messages'])})"):
            for m in group["messages"]:
                st.markdown(f"**{m['author']}** · {m['created_at'][:16].replace('T', ' ')}  \n{m['body']}")
            if st.button("Open case", key=f"open_{c['case_id']}"):
                st.session_state.selected_case = c["case_id"]
                st.session_state.pending_tab = "Cases"
                st.rerun()

def show_settings(store, user, scope, cases, messages):
    show_header("Settings", "Manage your account settings and data preferences.")
    st.subheader("Account")
    st.write(f"**{user['name']}** · {user['email']} · {user['company_name']} · role: {user['role']}")
    st.caption(f"Member since {user['created_at'][:10]}")

    st.subheader("Data")
    st.caption("Each client's data is isolated and cannot be accessed by other users.")
    if st.button(f"🔄 Reload from {os.path.basename(SEED_PATH)}"):
        seeded = load_seed_file(SEED_PATH, scope)
        if seeded:
            store.save_cases(seeded, scope)
            st.success(f"✅ Loaded {len(seeded)} case(s)")
        else:
            st.warning("JSON data file not found or empty")
    export_buttons(cases, messages, key="settings_export")

    if user.get("role") == "admin":
        st.subheader("Danger zone")
        confirm = st.checkbox("I understand this removes every client's cases and messages")
        if st.button("🗑️ Reset store", disabled=not confirm):
            store.reset()
            st.rerun()

def main():
    """Main application interface"""
    inject_custom_css()
    store = get_store()

    user = st.session_state.get("user")
    if user is None:
        show_login(store)
        return

    st.sidebar.markdown(f"**{user['name']}**  \n{user['company_name']}")
    scope = active_scope(store, user)
    # widget keys can only be set before the widget is drawn
    if "pending_tab" in st.session_state:
        st.session_state.tab = st.session_state.pop("pending_tab")
    tab = st.sidebar.radio("Navigate", TABS, key="tab")
    if st.sidebar.button("Sign out"):
        for key in ("user", "selected_case"):
            st.session_state.pop(key, None)
        st.rerun()

    state = store.load(scope)
    cases, messages = state["cases"], state["messages"]

    if tab == "Overview":
        show_overview(store, user, scope, cases, messages)
    elif tab == "Cases":
        show_cases(store, scope, cases, messages)
    elif tab == "Reports":
        show_reports(cases)
    elif tab == "Messages":
        show_messages(cases, messages)
    else:
        show_settings(store, user, scope, cases, messages)

if __name__ == "__main__":
    st.set_page_config(
        page_title="Client Collections Portal",
        layout="wide",
        initial_sidebar_state="expanded"
    )

    main()
