import copy
import json
import uuid
from types import SimpleNamespace

import pytest


# =====================================================================
# IN-MEMORY SUPABASE
# =====================================================================

class FakeQuery:
    """Just enough of the postgrest builder for the app's queries."""

    def __init__(self, store, table):
        self.store = store
        self.table = table
        self.op = "select"
        self.payload = None
        self.columns = "*"
        self.count_mode = None
        self.filters = []
        self.order_by = None
        self.row_limit = None

    def select(self, columns="*", count=None):
        self.op = "select"
        self.columns = columns
        self.count_mode = count
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = payload
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = payload
        return self

    def delete(self):
        self.op = "delete"
        return self

    def _filter(self, fn):
        self.filters.append(fn)
        return self

    def eq(self, column, value):
        return self._filter(lambda row: row.get(column) == value)

    def neq(self, column, value):
        return self._filter(lambda row: row.get(column) != value)

    def in_(self, column, values):
        return self._filter(lambda row: row.get(column) in values)

    def gte(self, column, value):
        return self._filter(lambda row: row.get(column) is not None and row.get(column) >= value)

    def gt(self, column, value):
        return self._filter(lambda row: row.get(column) is not None and row.get(column) > value)

    def lte(self, column, value):
        return self._filter(lambda row: row.get(column) is not None and row.get(column) <= value)

    def lt(self, column, value):
        return self._filter(lambda row: row.get(column) is not None and row.get(column) < value)

    def order(self, column, desc=False):
        self.order_by = (column, desc)
        return self

    def limit(self, n):
        self.row_limit = n
        return self

    def execute(self):
        if (self.table, self.op) in self.store.failures:
            raise RuntimeError(f"{self.op} on {self.table} failed")

        rows = self.store.tables.setdefault(self.table, [])
        if self.op == "insert":
            docs = self.payload if isinstance(self.payload, list) else [self.payload]
            inserted = []
            for doc in docs:
                doc = copy.deepcopy(doc)
                doc.setdefault("id", uuid.uuid4().hex)
                rows.append(doc)
                inserted.append(copy.deepcopy(doc))
            return SimpleNamespace(data=inserted, count=None)

        matched = [row for row in rows if all(f(row) for f in self.filters)]

        if self.op == "update":
            for row in matched:
                row.update(copy.deepcopy(self.payload))
            return SimpleNamespace(data=copy.deepcopy(matched), count=None)

        if self.op == "delete":
            self.store.tables[self.table] = [row for row in rows if row not in matched]
            return SimpleNamespace(data=copy.deepcopy(matched), count=None)

        if self.order_by:
            column, desc = self.order_by
            matched = sorted(matched, key=lambda row: str(row.get(column) or ""), reverse=desc)
        count = len(matched) if self.count_mode else None
        if self.row_limit is not None:
            matched = matched[:self.row_limit]
        if self.columns != "*":
            wanted = [c.strip() for c in self.columns.split(",")]
            matched = [{c: row.get(c) for c in wanted} for row in matched]
        return SimpleNamespace(data=copy.deepcopy(matched), count=count)


class FakeAuth:
    def __init__(self):
        self.accounts = {}
        self.signed_out = 0
        self.reset_emails = []

    def sign_up(self, credentials):
        email = credentials["email"]
        if email in self.accounts:
            raise RuntimeError("User already registered")
        user = SimpleNamespace(
            id=uuid.uuid4().hex,
            email=email,
            user_metadata=credentials.get("options", {}).get("data", {}),
        )
        self.accounts[email] = (credentials["password"], user)
        return SimpleNamespace(user=user, session=None)

    def sign_in_with_password(self, credentials):
        password, user = self.accounts.get(credentials["email"], (None, None))
        if user is None or password != credentials["password"]:
            raise RuntimeError("Invalid login credentials")
        return SimpleNamespace(user=user, session=SimpleNamespace(access_token="token"))

    def sign_out(self):
        self.signed_out += 1

    def reset_password_for_email(self, email):
        self.reset_emails.append(email)


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.failures = set()
        self.auth = FakeAuth()

    def table(self, name):
        return FakeQuery(self, name)

    def fail(self, table, op):
        self.failures.add((table, op))

    def rows(self, name):
        return self.tables.get(name, [])


# =====================================================================
# FAKE HTTP
# =====================================================================

class FakeHTTPResponse:
    def __init__(self, status_code=200, body=None, text=None):
        self.status_code = status_code
        self.text = text if text is not None else json.dumps(body)

    @property
    def ok(self):
        return 200 <= self.status_code < 300

    def json(self):
        return json.loads(self.text)


class RecordingPost:
    """Stand-in for requests.post that records calls and replays a response or raises."""

    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def __call__(self, url, json=None, timeout=None, **kwargs):
        self.calls.append({"url": url, "json": json, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.response


# =====================================================================
# FIXTURES
# =====================================================================

@pytest.fixture
def fake_db():
    return FakeSupabase()


@pytest.fixture
def complete_profile():
    return {
        "name": "Maria Santos",
        "email": "maria@example.com",
        "primaryCondition": "diabetes",
        "otherConditions": {"kidneyDisease": False, "heartDisease": False},
        "diabetesStatus": {"bloodSugar": 110},
        "treatmentManagement": {
            "diabetesMedication": {"medications": ["Metformin"]},
            "hypertensionMedication": {"medications": []},
        },
        "demographics": {
            "biologicalSex": "Female",
            "age": 45,
            "heightCm": 160,
            "weightKg": 64,
            "activityLevel": "Moderate",
        },
    }


@pytest.fixture
def hypertension_profile_without_bp(complete_profile):
    profile = copy.deepcopy(complete_profile)
    profile["primaryCondition"] = "hypertension"
    del profile["diabetesStatus"]
    return profile


@pytest.fixture
def nutrition():
    return {
        "calories": 250,
        "carbohydrates": 30,
        "protein": 8,
        "fat": 9,
        "sodium": 200,
        "fiber": 3,
        "totalSugars": 6,
    }


@pytest.fixture
def make_scan_row():
    def _make(user_id="user-1", prediction="Safe", timestamp="2025-03-05T02:00:00+00:00", **nutrition):
        data = {
            "calories": 250,
            "carbohydrates": 30,
            "protein": 8,
            "fat": 9,
            "sodium": 200,
            "fiber": 3,
            "totalSugars": 6,
        }
        data.update(nutrition)
        tips = [{"content": f"tip {i}"} for i in range(5)]
        return {
            "id": uuid.uuid4().hex,
            "userId": user_id,
            "timestamp": timestamp,
            "foodName": "Oat Bar",
            "condition": "diabetes",
            "nutritionData": {"schemaVersion": 2, **data},
            "prediction": {"prediction": prediction, "reasoning": "because", "healthTip": tips},
            "schemaVersion": 2,
        }
    return _make


@pytest.fixture
def llm(monkeypatch):
    """Install a RecordingPost as requests.post for the model client."""
    from modules import genai_advisor

    def install(response=None, error=None):
        fake = RecordingPost(response, error)
        monkeypatch.setattr(genai_advisor.requests, "post", fake)
        return fake
    return install
