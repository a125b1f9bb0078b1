#!/usr/bin/env python3
from case_import import merge_rows
from portal_reports import (
    age_report,
    case_thread,
    collection_trend,
    collector_report,
    filter_cases,
    format_currency,
    group_messages,
    message_counts,
    overview_stats,
    paginate,
    status_distribution,
    status_summary,
)


def build(rows):
    return merge_rows(rows, [], 'client-001').cases

def msg(case_id, author, created_at, body="", read=None):
    return {'id': f'{case_id}-{created_at}', 'case_id': case_id, 'author': author,
            'created_at': created_at, 'body': body, 'read': author == 'Client' if read is None else read}


def test_format_currency():
    test_cases = [
        ((1234.5, 'USD'), '$1,234.50'),
        ((1234.5, None), '$1,234.50'),
        ((-5, 'GBP'), '-£5.00'),
        ((10, 'EUR'), '€10.00'),
        ((10, 'CAD'), 'CAD 10.00'),
        ((None, 'USD'), '$0.00'),
    ]
    for args, expected in test_cases:
        assert format_currency(*args) == expected, args

def test_overview_stats():
    cases = build([
        {'Case ID': 'C-1', 'Principal': '1000', 'Paid': '250', 'Status': 'open', 'Last Activity': '2024-03-01'},
        {'Case ID': 'C-2', 'Principal': '500', 'Status': 'on hold', 'Last Activity': '2024-05-01'},
    ])
    messages = [msg('C-1', 'Client', '2024-05-02T10:00:00+00:00'), msg('C-2', 'Collector', '2024-05-03T10:00:00+00:00')]
    stats = overview_stats(cases, messages)

    assert stats['case_count'] == 2
    assert stats['total_due'] == 1500
    assert stats['total_collected'] == 250
    assert stats['total_outstanding'] == 1250
    assert stats['collection_rate'] == 17
    assert stats['client_messages'] == 1
    assert [c['case_id'] for c in stats['latest_cases']] == ['C-2', 'C-1']
    assert stats['latest_messages'][0]['case_id'] == 'C-2'
    assert set(stats['by_status']['status']) == {'Open', 'On Hold'}

def test_overview_stats_empty():
    stats = overview_stats([], [])
    assert stats['collection_rate'] == 0
    assert stats['total_outstanding'] == 0
    assert stats['by_status'].empty
    assert stats['latest_cases'] == []

def test_status_summary_amounts():
    cases = build([
        {'Case ID': 'A', 'Principal': '100', 'Status': 'open'},
        {'Case ID': 'B', 'Principal': '200', 'Status': 'open'},
        {'Case ID': 'C', 'Principal': '50', 'Status': 'closed'},
    ])
    out = status_summary(cases)
    assert list(out['status']) == ['Open', 'Closed']
    assert list(out['cases']) == [2, 1]
    assert list(out['amount']) == [300, 50]

def test_age_report_buckets():
    cases = build([
        {'Case ID': 'A', 'Principal': '100', 'Age in Months': '1'},
        {'Case ID': 'B', 'Principal': '100', 'Age in Months': '3'},
        {'Case ID': 'C', 'Principal': '100', 'Age in Months': '13'},
        {'Case ID': 'D', 'Principal': '100'},
    ])
    out = age_report(cases)
    assert list(out['age_group']) == ['0-3 months', '3-6 months', '12+ months']
    assert list(out['cases']) == [2, 1, 1]

def test_collector_report():
    cases = [
        {'case_id': 'A', 'collector_name': 'Sam', 'collector': 'c-1', 'collected_amount': 100, 'balance_amount': 300},
        {'case_id': 'B', 'collector': 'S2', 'collected_amount': 50, 'balance_amount': 50},
        {'case_id': 'C', 'collected_amount': 0, 'balance_amount': 200},
    ]
    out = collector_report(cases)
    assert list(out['collector']) == ['Sam', 'S2', 'Unassigned']
    assert list(out['rate']) == [25.0, 50.0, 0.0]
    assert list(out['outstanding']) == [300, 50, 200]

def test_collector_report_empty():
    assert collector_report([]).empty

def test_collection_trend_last_six_months():
    cases = [{'case_id': f'C-{m}', 'collected_amount': 10 * m, 'last_payment_date': f'2024-{m:02d}-15'}
             for m in range(1, 9)]
    cases.append({'case_id': 'X', 'collected_amount': 999, 'last_payment_date': 'someday'})
    out = collection_trend(cases)

    assert list(out['month']) == ['Mar 2024', 'Apr 2024', 'May 2024', 'Jun 2024', 'Jul 2024', 'Aug 2024']
    assert list(out['collected']) == [30, 40, 50, 60, 70, 80]

def test_status_distribution_order():
    cases = [{'status': 'Paid'}, {'status': 'New'}, {'status': 'Paid'}, {'status': 'Open'}]
    dist = status_distribution(cases)
    assert [(d['name'], d['value']) for d in dist] == [('New', 1), ('Open', 1), ('Paid', 2)]
    assert all(d['color'].startswith('#') for d in dist)

def test_filter_cases():
    cases = build([
        {'Case ID': 'C-1', 'Debtor Name': 'Jane Doe', 'Status': 'open'},
        {'Case ID': 'C-2', 'Debtor Name': 'John Roe', 'Status': 'closed'},
        {'Case ID': 'Z-3', 'Debtor Name': 'Janet Fox', 'Status': 'open'},
    ])
    assert [c['case_id'] for c in filter_cases(cases, 'jan')] == ['C-1', 'Z-3']
    assert [c['case_id'] for c in filter_cases(cases, '', 'Closed')] == ['C-2']
    assert [c['case_id'] for c in filter_cases(cases, 'c-', 'Open')] == ['C-1']
    assert len(filter_cases(cases)) == 3

def test_paginate_clamps():
    items = list(range(23))
    page_items, page, total = paginate(items, 3)
    assert (page_items, page, total) == ([20, 21, 22], 3, 3)
    assert paginate(items, 99)[1] == 3
    assert paginate(items, 0)[0] == list(range(10))
    assert paginate([], 1) == ([], 1, 1)

def test_group_messages():
    cases = build([{'Case ID': 'C-1', 'Debtor Name': 'Jane'}, {'Case ID': 'C-2', 'Debtor Name': 'John'}])
    m1 = msg('C-1', 'Client', '2024-01-01T09:00:00+00:00', 'first question')
    m2 = msg('C-1', 'Collector', '2024-01-03T09:00:00+00:00', 'reply')
    m3 = msg('C-2', 'Client', '2024-01-02T09:00:00+00:00', 'about the invoice')
    messages = [m1, m2, m3]

    groups = group_messages(cases, messages)
    assert [g['case']['case_id'] for g in groups] == ['C-1', 'C-2']
    assert groups[0]['messages'] == [m2, m1]

    client_only = group_messages(cases, messages, author='client')
    assert [g['case']['case_id'] for g in client_only] == ['C-2', 'C-1']

    assert [g['case']['case_id'] for g in group_messages(cases, messages, search='invoice')] == ['C-2']
    assert [g['case']['case_id'] for g in group_messages(cases, messages, search='jane')] == ['C-1']

def test_case_thread_and_counts():
    messages = [
        msg('C-1', 'Collector', '2024-01-03T09:00:00+00:00'),
        msg('C-1', 'Client', '2024-01-01T09:00:00+00:00'),
        msg('C-2', 'System', '2024-01-02T09:00:00+00:00', read=True),
    ]
    thread = case_thread(messages, 'C-1')
    assert [m['author'] for m in thread] == ['Client', 'Collector']

    assert message_counts(messages) == {'total': 3, 'client': 1, 'collector': 1, 'unread': 1}
