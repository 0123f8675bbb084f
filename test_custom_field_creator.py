#!/usr/bin/env python3
"""
Tests for batched custom field creation.
"""

import logging
from unittest.mock import MagicMock, patch

from api.services.custom_field_creator import CustomFieldBatchCreator, chunk, is_already_exists_error
from api.services.ghl_api import GoHighLevelAPI


class SleepRecorder:
    def __init__(self):
        self.pauses = []

    def __call__(self, seconds):
        self.pauses.append(seconds)


def make_creator(ghl, batch_size=50, sleep=None):
    return CustomFieldBatchCreator(ghl, batch_size=batch_size, batch_delay=1.0, sleep=sleep or SleepRecorder())


def warnings_from(caplog):
    return [r for r in caplog.records if r.levelno >= logging.WARNING]


def test_chunk():
    assert chunk(["a", "b", "c"], 2) == [["a", "b"], ["c"]]
    assert chunk([], 50) == []


def test_eighty_fields_make_two_batches_with_one_pause(fake_ghl):
    sleep = SleepRecorder()
    fields = [f"Field {i}" for i in range(80)]

    report = make_creator(fake_ghl, sleep=sleep).create_custom_fields(fields, "loc_token", "loc_123")

    assert report.batch_count == 2
    assert sleep.pauses == [1.0]
    assert report.created_count == 80
    assert fake_ghl.count("create_custom_field") == 80


def test_full_single_batch_has_no_pause(fake_ghl):
    sleep = SleepRecorder()
    report = make_creator(fake_ghl, sleep=sleep).create_custom_fields(
        [f"Field {i}" for i in range(50)], "loc_token", "loc_123"
    )
    assert report.batch_count == 1
    assert sleep.pauses == []


def test_pause_between_every_batch_but_not_after_last(fake_ghl):
    sleep = SleepRecorder()
    report = make_creator(fake_ghl, batch_size=10, sleep=sleep).create_custom_fields(
        [f"Field {i}" for i in range(25)], "loc_token", "loc_123"
    )
    assert report.batch_count == 3
    assert sleep.pauses == [1.0, 1.0]


def test_no_fields_no_calls(fake_ghl):
    sleep = SleepRecorder()
    report = make_creator(fake_ghl, sleep=sleep).create_custom_fields([], "loc_token", "loc_123")
    assert report.created == {}
    assert report.batch_count == 0
    assert fake_ghl.calls == []
    assert sleep.pauses == []


def test_fields_created_in_order(fake_ghl):
    make_creator(fake_ghl).create_custom_fields(["B", "A", "C"], "loc_token", "loc_123")
    assert [c[1] for c in fake_ghl.calls] == ["B", "A", "C"]


def test_already_exists_error_is_quiet_and_non_blocking(fake_ghl, caplog):
    caplog.set_level(logging.DEBUG)
    fake_ghl.create_errors["Gym Name"] = Exception("Custom field with name Gym Name Already Exists")

    report = make_creator(fake_ghl).create_custom_fields(
        ["Business Email", "Gym Name", "Rep First name"], "loc_token", "loc_123"
    )

    assert "Gym Name" not in report.created
    assert list(report.created) == ["Business Email", "Rep First name"]
    assert report.already_existing == ["Gym Name"]
    assert report.failures == []
    assert warnings_from(caplog) == []


def test_other_errors_are_logged_and_skipped(fake_ghl, caplog):
    caplog.set_level(logging.DEBUG)
    fake_ghl.create_errors["Gym Name"] = RuntimeError("rate limited")

    report = make_creator(fake_ghl).create_custom_fields(["Gym Name", "Website Goal"], "loc_token", "loc_123")

    assert list(report.created) == ["Website Goal"]
    assert [f.field_name for f in report.failures] == ["Gym Name"]
    assert len(warnings_from(caplog)) == 1


def test_response_without_field_key_is_a_failure():
    ghl = MagicMock()
    ghl.create_custom_field.side_effect = [None, {"customField": {}}, {"customField": {"fieldKey": "contact.c"}}]

    report = make_creator(ghl).create_custom_fields(["A", "B", "C"], "loc_token", "loc_123")

    assert list(report.created) == ["C"]
    assert [f.field_name for f in report.failures] == ["A", "B"]
    ghl.create_custom_field.assert_called_with("loc_token", "loc_123", "C", "TEXT")


def test_is_already_exists_error():
    assert is_already_exists_error(Exception("Field already exists"))
    assert is_already_exists_error(Exception("ALREADY EXISTS"))
    assert not is_already_exists_error(Exception("timeout"))


def ghl_response(status_code, body=None, text=""):
    mock = MagicMock()
    mock.status_code = status_code
    mock.text = text
    mock.json.return_value = body
    return mock


@patch("api.services.ghl_api.requests.post")
def test_already_exists_answer_from_ghl_client(mock_post, caplog):
    caplog.set_level(logging.DEBUG)
    mock_post.side_effect = [
        ghl_response(400, text='{"message":"Custom field with name Gym Name already exists"}'),
        ghl_response(201, body={"customField": {"fieldKey": "contact.website_goal"}}),
        ghl_response(422, text='{"message":"Invalid dataType"}'),
    ]
    ghl = GoHighLevelAPI(base_url="https://ghl.test", api_version="2021-07-28", timeout=5)

    report = make_creator(ghl).create_custom_fields(["Gym Name", "Website Goal", "Bad Field"], "loc_token", "loc_123")

    assert report.already_existing == ["Gym Name"]
    assert list(report.created) == ["Website Goal"]
    assert [f.field_name for f in report.failures] == ["Bad Field"]
    assert "Invalid dataType" in report.failures[0].message
    loud = [r.getMessage() for r in warnings_from(caplog)]
    assert not any("Gym Name" in message for message in loud)
    assert any("Bad Field" in message for message in loud)
