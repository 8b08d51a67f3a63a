# Test the recurrence route of the API

import sys
import os
from fastapi.testclient import TestClient

# Add parent directories to path to import app modules
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..', '..', 'app'))
from app import app

client = TestClient(app)


def test_generate_rule():
    response = client.post("/recurrence/generate", json={
        "options": {"frequency": "weekly", "days_of_week": [0, 2, 4], "ends": "after", "count": 5},
        "anchor_start": "2024-01-01T09:00:00",
    })
    assert response.status_code == 200
    assert response.json() == {"rule": "FREQ=WEEKLY;INTERVAL=1;BYDAY=MO,WE,FR;COUNT=5"}


def test_generate_rule_invalid_options():
    response = client.post("/recurrence/generate", json={
        "options": {"frequency": "monthly", "day_of_month": 40},
        "anchor_start": "2024-01-01T09:00:00",
    })
    assert response.status_code == 400


def test_generate_rule_unknown_frequency():
    response = client.post("/recurrence/generate", json={
        "options": {"frequency": "hourly"},
        "anchor_start": "2024-01-01T09:00:00",
    })
    assert response.status_code == 422


def test_parse_rule():
    response = client.get("/recurrence/parse", params={"text": "RRULE:FREQ=WEEKLY;BYDAY=FR,MO"})
    assert response.status_code == 200
    data = response.json()
    assert data["frequency"] == "weekly"
    assert data["interval"] == 1
    assert data["days_of_week"] == [0, 4]
    assert data["ends"] == "never"


def test_parse_rule_with_anchor_defaults():
    response = client.get("/recurrence/parse", params={"text": "FREQ=MONTHLY", "anchor_start": "2024-01-31T09:00:00Z"})
    assert response.status_code == 200
    assert response.json()["day_of_month"] == 31


def test_parse_rule_unparseable():
    response = client.get("/recurrence/parse", params={"text": "FREQ=HOURLY"})
    assert response.status_code == 400


def test_parse_rule_bad_anchor():
    response = client.get("/recurrence/parse", params={"text": "FREQ=DAILY", "anchor_start": "someday"})
    assert response.status_code == 400


def test_clamp_rule():
    response = client.post("/recurrence/clamp", json={"rule": "FREQ=DAILY;COUNT=10", "before": "2024-01-05T09:00:00Z"})
    assert response.status_code == 200
    assert response.json()["rule"] == "FREQ=DAILY;UNTIL=20240105T085959Z"


def test_clamp_rule_unparseable():
    response = client.post("/recurrence/clamp", json={"rule": "nonsense", "before": "2024-01-05T09:00:00Z"})
    assert response.status_code == 400


def test_describe_rule():
    response = client.get("/recurrence/describe", params={
        "text": "FREQ=WEEKLY;INTERVAL=2;BYDAY=MO,FR;COUNT=5",
        "anchor_start": "2024-01-01T09:00:00",
    })
    assert response.status_code == 200
    assert response.json()["text"] == "every 2 weeks on Monday, Friday, 5 times"


def test_describe_rule_requires_anchor():
    response = client.get("/recurrence/describe", params={"text": "FREQ=YEARLY", "anchor_start": ""})
    assert response.status_code == 400


def test_describe_rule_bad_anchor():
    response = client.get("/recurrence/describe", params={"text": "FREQ=YEARLY", "anchor_start": "someday"})
    assert response.status_code == 400


def test_expand():
    series = {
        "title": "Standup",
        "start": "2024-01-01T09:00:00Z",
        "end": "2024-01-01T09:30:00Z",
        "recurrence": "FREQ=DAILY;COUNT=5",
        "exceptions": ["2024-01-03T09:00:00.000Z"],
    }
    body = {"series": series, "window_start": "2024-01-01T00:00:00Z", "window_end": "2024-02-01T00:00:00Z"}

    response = client.post("/recurrence/expand", json=body)
    assert response.status_code == 200
    assert len(response.json()) == 4

    response = client.post("/recurrence/expand", json=dict(body, include_exceptions=True))
    assert len(response.json()) == 5


def test_expand_empty_window():
    body = {
        "series": {"start": "2024-01-01T09:00:00Z", "recurrence": "FREQ=DAILY"},
        "window_start": "2024-01-02T00:00:00Z",
        "window_end": "2024-01-01T00:00:00Z",
    }
    response = client.post("/recurrence/expand", json=body)
    assert response.status_code == 400
