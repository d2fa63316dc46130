import pytest
from pydantic import ValidationError

from dealer_crm.config import Settings


def test_missing_jwt_secret_stops_startup(monkeypatch):
    monkeypatch.delenv("JWT_SECRET", raising=False)
    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_jwt_secret_is_read_from_environment(monkeypatch):
    monkeypatch.setenv("JWT_SECRET", "from-env")
    assert Settings(_env_file=None).jwt_secret == "from-env"
