import pytest

from laundry import create_app
from laundry.extensions import db
from laundry.models import ClothingType, User
from laundry.services import sms
from laundry.utils.passwords import hash_password, login_email_for

PASSWORD = "counter123"

USERS = (
    ("admin", "Shop Admin", "admin"),
    ("jane", "Jane Wanjiku", "staff"),
    ("till", "Till Cashier", "cashier"),
)


class FakeResponse:
    def __init__(self, status_code, payload):
        self.status_code = status_code
        self._payload = payload
        self.reason = "Created" if status_code < 400 else "Bad Request"
        self.text = str(payload)

    @property
    def ok(self):
        return self.status_code < 400

    def json(self):
        return self._payload


class FakeGateway:
    """Stands in for requests.post against Africa's Talking and Twilio."""

    def __init__(self):
        self.sent = []
        self.alerts = []
        self.reject = False
        self.error = None

    def post(self, url, headers=None, data=None, auth=None, timeout=None):
        if self.error is not None:
            raise self.error

        if "twilio.com" in url:
            self.alerts.append(data)
            return FakeResponse(201, {"sid": f"SM{len(self.alerts):04d}", "status": "queued"})

        self.sent.append(data)
        status = "InvalidPhoneNumber" if self.reject else "Success"
        return FakeResponse(201, {
            "SMSMessageData": {
                "Message": "Sent to 1/1 Total Cost: KES 0.8000",
                "Recipients": [{
                    "number": data["to"],
                    "status": status,
                    "messageId": f"ATXid_{len(self.sent)}",
                    "cost": "KES 0.8000",
                }],
            }
        })


@pytest.fixture
def gateway(monkeypatch):
    fake = FakeGateway()
    monkeypatch.setattr(sms.requests, "post", fake.post)
    return fake


@pytest.fixture
def app(gateway):
    app = create_app({
        "TESTING": True,
        "SECRET_KEY": "test",
        "SQLALCHEMY_DATABASE_URI": "sqlite://",
        "RATELIMIT_ENABLED": False,
        "AT_API_KEY": "at-key",
        "AT_USERNAME": "sandbox",
        "AT_SANDBOX": True,
        "TWILIO_ACCOUNT_SID": "AC123",
        "TWILIO_AUTH_TOKEN": "token",
        "TWILIO_PHONE_NUMBER": "+15005550006",
        "MPESA_ALERT_PHONE_NUMBER": "+254742048000",
    })

    with app.app_context():
        db.create_all()
        for username, name, role in USERS:
            db.session.add(User(
                full_name=name,
                email=login_email_for(username),
                role=role,
                password_hash=hash_password(PASSWORD),
            ))
        db.session.add_all([
            ClothingType(name="Shirt", price=150.0),
            ClothingType(name="Duvet", price=800.0),
        ])
        db.session.commit()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def client(app):
    return app.test_client()


def login(client, username, password=PASSWORD):
    return client.post("/login", data={"username": username, "password": password})


@pytest.fixture
def as_admin(client):
    login(client, "admin")
    return client


@pytest.fixture
def as_staff(client):
    login(client, "jane")
    return client


@pytest.fixture
def as_cashier(client):
    login(client, "till")
    return client
