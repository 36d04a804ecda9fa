"""Tests for Nominatim label formatting and the rate-limited client."""

from unittest.mock import MagicMock, patch

import pytest
import requests

from geocoding import NominatimGeocoder, format_location_label
from tests.gps_test_fixtures import NOMINATIM_BARE, NOMINATIM_POI, NOMINATIM_STREET, NOMINATIM_TOWN


def _response(status=200, payload=None):
    resp = MagicMock()
    resp.status_code = status
    resp.json.return_value = payload
    return resp


# =====================================================================
# Label formatting
# =====================================================================

class TestFormatLocationLabel:
    @pytest.mark.parametrize("payload, expected", [
        (NOMINATIM_POI, "Fernsehturm"),
        (NOMINATIM_STREET, "Rosenthaler Straße 12"),
        (NOMINATIM_TOWN, "Bernau bei Berlin"),
        (NOMINATIM_BARE, "Müggelsee"),
        (None, "Unknown"),
        ({}, "Unknown"),
    ])
    def test_labels(self, payload, expected):
        assert format_location_label(payload) == expected

    def test_road_without_house_number(self):
        assert format_location_label({"address": {"road": "Unter den Linden"}}) == "Unter den Linden"


# =====================================================================
# Client
# =====================================================================

class TestNominatimGeocoder:
    @patch("geocoding.requests.get")
    def test_lookup(self, mock_get):
        mock_get.return_value = _response(payload=NOMINATIM_STREET)
        geocoder = NominatimGeocoder(url="http://nominatim.test/reverse")

        assert geocoder.location_label(52.5265, 13.4021) == "Rosenthaler Straße 12"
        args, kwargs = mock_get.call_args
        assert args[0] == "http://nominatim.test/reverse"
        assert kwargs["params"]["lat"] == 52.5265
        assert kwargs["params"]["lon"] == 13.4021
        assert kwargs["params"]["format"] == "jsonv2"
        assert "User-Agent" in kwargs["headers"]

    @patch("geocoding.requests.get", side_effect=requests.ConnectionError("offline"))
    def test_network_failure_is_unknown(self, mock_get):
        geocoder = NominatimGeocoder()
        assert geocoder.lookup(52.52, 13.405) is None
        assert geocoder.location_label(52.52, 13.405) == "Unknown"

    @patch("geocoding.requests.get")
    def test_error_payload_is_none(self, mock_get):
        mock_get.return_value = _response(payload={"error": "Unable to geocode"})
        assert NominatimGeocoder().lookup(0.0, -140.0) is None

    @patch("geocoding.requests.get")
    def test_http_error_is_none(self, mock_get):
        mock_get.return_value = _response(status=503)
        assert NominatimGeocoder().lookup(52.52, 13.405) is None

    @patch("geocoding.time.sleep")
    @patch("geocoding.requests.get")
    def test_rate_limit(self, mock_get, mock_sleep):
        mock_get.return_value = _response(payload=NOMINATIM_POI)
        geocoder = NominatimGeocoder(min_interval_s=1.1)

        geocoder.lookup(52.5208, 13.4094)
        mock_sleep.assert_not_called()

        geocoder.lookup(52.5208, 13.4094)
        mock_sleep.assert_called_once()
        assert 0 < mock_sleep.call_args.args[0] <= 1.1
