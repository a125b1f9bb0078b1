#!/usr/bin/env python3
from streamlit_app import case_label_html, create_status_pill, message_html


def test_message_html_escapes_imported_text():
    html_out = message_html({'case_id': 'C-1', 'author': 'Collector', 'created_at': '2024-01-02T09:30:00+00:00',
                             'body': '<script>alert(1)</script> & <b>bold</b>'})
    assert '<script>' not in html_out
    assert '&lt;script&gt;alert(1)&lt;/script&gt; &amp; &lt;b&gt;bold&lt;/b&gt;' in html_out
    assert '<strong>Collector</strong>' in html_out
    assert '2024-01-02 09:30' in html_out

def test_client_message_bubble_class():
    assert 'cp-message client' in message_html({'author': 'Client', 'created_at': '', 'body': 'hi'})
    assert 'cp-message client' not in message_html({'author': 'System', 'created_at': '', 'body': 'hi'})

def test_case_label_and_pill_escape():
    label = case_label_html({'case_id': '<i>C-1</i>', 'debtor_name': '<img src=x onerror=alert(1)>'})
    assert '<img' not in label and '<i>' not in label
    assert '&lt;img src=x onerror=alert(1)&gt;' in label

    pill = create_status_pill('<b>Open</b>')
    assert '&lt;b&gt;Open&lt;/b&gt;' in pill
