from __future__ import annotations

import pytest
import requests

from actions.project_properties import (
    delete_project_property,
    get_project_property,
    list_project_properties,
    set_project_property,
)


def test_list_properties(api, http_session, make_response):
    http_session.request.return_value = make_response(200, {"keys": [{"key": "oncall", "self": "x"}, {"key": "tier"}]})

    assert list_project_properties(api, "OPS") == ["oncall", "tier"]
    assert http_session.request.call_args.args[1] == "https://acme.atlassian.net/rest/api/3/project/OPS/properties"


def test_get_property_value(api, http_session, make_response):
    http_session.request.return_value = make_response(200, {"key": "tier", "value": {"level": 1}})

    assert get_project_property(api, "OPS", "tier") == {"level": 1}


def test_get_missing_property_returns_none(api, http_session, make_response):
    http_session.request.return_value = make_response(404, {"errorMessages": ["not found"]})

    assert get_project_property(api, "OPS", "missing") is None


def test_get_property_propagates_other_errors(api, http_session, make_response):
    http_session.request.return_value = make_response(403)

    with pytest.raises(requests.HTTPError):
        get_project_property(api, "OPS", "tier")


def test_set_property_reports_creation(api, http_session, make_response):
    http_session.request.side_effect = [make_response(201), make_response(200)]

    assert set_project_property(api, "OPS", "tier", {"level": 2}) is True
    assert set_project_property(api, "OPS", "tier", {"level": 3}) is False
    method, url = http_session.request.call_args.args
    assert method == "PUT"
    assert url.endswith("/project/OPS/properties/tier")
    assert http_session.request.call_args.kwargs["json"] == {"level": 3}


def test_delete_property(api, http_session, make_response):
    http_session.request.return_value = make_response(204)

    delete_project_property(api, "OPS", "tier")

    assert http_session.request.call_args.args[0] == "DELETE"
