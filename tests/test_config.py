"""Tests for mail_harvest.config."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import pytest
from pydantic import ValidationError

from mail_harvest.config import (
    AllowList,
    HeaderFilterConfig,
    Settings,
    _split_list,
    load_json_config,
)

REQUIRED = {"POP3_HOST": "pop.acme.com", "POP3_USERNAME": "inbox@acme.com", "POP3_PASSWORD": "pw"}


class TestSplitList:
    def test_string_with_mixed_delimiters(self):
        assert _split_list(" A@x.com; b@x.com ,,") == ["a@x.com", "b@x.com"]

    def test_sequence_keeps_case_when_asked(self):
        assert _split_list(["Subject", " Date "], coerce_lower=False) == ["Subject", "Date"]

    def test_none(self):
        assert _split_list(None) == []


class TestAllowList:
    def test_flat_layout_is_lower_cased(self):
        allow = AllowList.model_validate({"senders": ["Reports@Vendor.net"], "receivers": ["INBOX@acme.com"]})
        assert allow.senders == ["reports@vendor.net"]
        assert allow.receivers == ["inbox@acme.com"]

    def test_wrapped_layout(self):
        allow = AllowList.model_validate({"whitelist": {"senders": ["a@x.com"], "receivers": ["b@x.com"]}})
        assert allow.senders == ["a@x.com"]
        assert allow.receivers == ["b@x.com"]

    def test_wrong_type_is_rejected(self):
        with pytest.raises(ValidationError):
            AllowList.model_validate({"senders": 5})


class TestHeaderFilterConfig:
    def test_names_keep_case(self):
        config = HeaderFilterConfig.model_validate({"headers_to_filter": ["Subject", "X-Mailer"]})
        assert config.headers_to_filter == ["Subject", "X-Mailer"]


class TestLoadJsonConfig:
    def test_reads_file(self, tmp_path: Path):
        path = tmp_path / "allowed_emails.json"
        path.write_text(json.dumps({"senders": ["a@x.com"], "receivers": []}), encoding="utf-8")
        assert load_json_config(path, AllowList).senders == ["a@x.com"]

    def test_missing_file_gives_empty_model(self, tmp_path: Path, caplog):
        with caplog.at_level(logging.WARNING):
            config = load_json_config(tmp_path / "absent.json", HeaderFilterConfig)
        assert config.headers_to_filter == []
        assert "not found" in caplog.text

    def test_invalid_file_gives_empty_model(self, tmp_path: Path, caplog):
        path = tmp_path / "broken.json"
        path.write_text("{oops", encoding="utf-8")
        with caplog.at_level(logging.WARNING):
            allow = load_json_config(path, AllowList)
        assert allow == AllowList()
        assert "unreadable" in caplog.text

    def test_non_utf8_file_gives_empty_model(self, tmp_path: Path, caplog):
        path = tmp_path / "latin1.json"
        path.write_bytes(b'{"senders": ["caf\xe9@x.com"]}')
        with caplog.at_level(logging.WARNING):
            allow = load_json_config(path, AllowList)
        assert allow == AllowList()
        assert "unreadable" in caplog.text


class TestSettings:
    def test_defaults(self):
        settings = Settings(**REQUIRED)
        assert settings.pop3_port == 995
        assert settings.ledger_path == Path("config/processed_emails.json")
        assert settings.attachment_extensions == ["xls", "xlsx"]
        assert settings.write_duplicate_attachments is True

    def test_env_variables(self, monkeypatch):
        for key, value in REQUIRED.items():
            monkeypatch.setenv(key, value)
        monkeypatch.setenv("POP3_PORT", "1995")
        monkeypatch.setenv("ATTACHMENT_EXTENSIONS", ".XLSX")
        monkeypatch.setenv("WRITE_DUPLICATE_ATTACHMENTS", "false")
        settings = Settings()
        assert settings.pop3_port == 1995
        assert settings.attachment_extensions == ["xlsx"]
        assert settings.write_duplicate_attachments is False

    def test_non_spreadsheet_extension_is_rejected(self):
        with pytest.raises(ValidationError, match="spreadsheet"):
            Settings(**REQUIRED, ATTACHMENT_EXTENSIONS="xlsx;pdf")

    def test_port_range(self):
        with pytest.raises(ValidationError):
            Settings(**REQUIRED, POP3_PORT=70000)

    def test_loads_static_files(self, tmp_path: Path):
        allow_path = tmp_path / "allow.json"
        allow_path.write_text(json.dumps({"senders": ["A@x.com"], "receivers": ["b@x.com"]}), encoding="utf-8")
        settings = Settings(**REQUIRED, ALLOW_LIST_PATH=allow_path, HEADER_FILTER_PATH=tmp_path / "none.json")
        assert settings.load_allow_list().senders == ["a@x.com"]
        assert settings.load_header_filter().headers_to_filter == []
