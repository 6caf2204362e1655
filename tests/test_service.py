"""
Tests for RecipeApiClient.

The HTTP layer is replaced with httpx.MockTransport; backoff sleeps are
recorded instead of awaited.
"""

import asyncio
import json

import httpx
import pytest

from create_recipe.errors import RecipeApiError
from create_recipe.service import RecipeApiClient
from create_recipe.types import TherapeuticProperty
from create_recipe.webhook import RetryPolicy

ENDPOINT = "http://test/api/create-recipe"


def _run(coro):
    """Run an async coroutine synchronously (no pytest-asyncio needed)."""
    return asyncio.run(coro)


def _client(handler, sleeps=None, **kwargs) -> RecipeApiClient:
    async def fake_sleep(seconds):
        if sleeps is not None:
            sleeps.append(seconds)

    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return RecipeApiClient(ENDPOINT, http_client=http, sleep=fake_sleep, **kwargs)


def _causes_body():
    return [{"message": {"content": {"potential_causes": [
        {"cause_name": "Work stress", "cause_suggestion": "Deadlines", "explanation": "Pressure"},
        {"cause_name": "Poor sleep"},
    ]}}}]


class TestRequest:

    def test_request_body(self, health_concern, demographics):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=_causes_body())

        causes = _run(_client(handler).fetch_potential_causes(health_concern, demographics))

        assert [c.cause_name for c in causes] == ["Work stress", "Poor sleep"]
        assert seen[0] == {
            "health_concern": "chronic anxiety and stress",
            "gender": "female",
            "age_category": "adult",
            "age_specific": "28",
            "user_language": "PT_BR",
            "step": "PotentialCauses",
        }

    def test_language_override(self, health_concern, demographics):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"potential_causes": []})

        _run(_client(handler, user_language="EN_US").fetch_potential_causes(health_concern, demographics, "ES_ES"))

        assert seen[0]["user_language"] == "ES_ES"

    def test_retries_then_succeeds(self, health_concern, demographics):
        responses = iter([
            httpx.Response(503, json={"error": "Service Unavailable", "message": "busy"}),
            httpx.Response(503, json={"error": "Service Unavailable", "message": "busy"}),
            httpx.Response(200, json=_causes_body()),
        ])
        calls = []
        sleeps = []

        def handler(request):
            calls.append(request)
            return next(responses)

        causes = _run(_client(handler, sleeps).fetch_potential_causes(health_concern, demographics))

        assert len(causes) == 2
        assert len(calls) == 3
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self, health_concern, demographics):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"error": "Internal Server Error", "message": "exploded"})

        with pytest.raises(RecipeApiError) as exc:
            _run(_client(handler).fetch_potential_causes(health_concern, demographics))

        assert len(calls) == 3
        assert exc.value.status == 500
        assert exc.value.message == "exploded"
        assert exc.value.code == "Internal Server Error"

    def test_client_error_not_retried(self, health_concern, demographics):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, json={"error": "Bad Request", "message": "Missing required field: step"})

        with pytest.raises(RecipeApiError) as exc:
            _run(_client(handler).fetch_potential_causes(health_concern, demographics))

        assert len(calls) == 1
        assert exc.value.status == 400
        assert exc.value.message == "Missing required field: step"

    def test_timeout_not_retried(self, health_concern, demographics):
        calls = []

        async def handler(request):
            calls.append(request)
            await asyncio.sleep(1)
            return httpx.Response(200, json=_causes_body())

        with pytest.raises(RecipeApiError) as exc:
            _run(_client(handler, timeout=0.01).fetch_potential_causes(health_concern, demographics))

        assert exc.value.code == "TIMEOUT_ERROR"
        assert exc.value.status == 408
        assert len(calls) == 1

    def test_network_error_retried(self, health_concern, demographics):
        sleeps = []

        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        with pytest.raises(RecipeApiError) as exc:
            _run(_client(handler, sleeps, retry=RetryPolicy(max_attempts=2)).fetch_potential_causes(
                health_concern, demographics
            ))

        assert exc.value.code == "NETWORK_ERROR"
        assert exc.value.status == 0
        assert sleeps == [1.0]

    def test_invalid_payload(self, health_concern, demographics):
        def handler(request):
            return httpx.Response(200, json={"unexpected": True})

        with pytest.raises(RecipeApiError) as exc:
            _run(_client(handler).fetch_potential_causes(health_concern, demographics))

        assert exc.value.code == "INVALID_RESPONSE"

    def test_non_json_body(self, health_concern, demographics):
        def handler(request):
            return httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(RecipeApiError) as exc:
            _run(_client(handler).fetch_potential_causes(health_concern, demographics))

        assert exc.value.code == "INVALID_RESPONSE"


class TestSteps:

    def test_symptoms_require_causes(self, health_concern, demographics):
        def handler(request):
            raise AssertionError("should not be called")

        with pytest.raises(RecipeApiError) as exc:
            _run(_client(handler).fetch_potential_symptoms(health_concern, demographics, []))

        assert exc.value.code == "NO_CAUSES_SELECTED"
        assert exc.value.status == 400

    def test_symptoms_send_selected_causes(self, health_concern, demographics, sample_causes):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json={"potential_symptoms": [{"symptom_name": "Insomnia"}]})

        symptoms = _run(_client(handler).fetch_potential_symptoms(
            health_concern, demographics, sample_causes[:2]
        ))

        assert symptoms[0].symptom_name == "Insomnia"
        assert seen[0]["step"] == "PotentialSymptoms"
        assert [c["cause_name"] for c in seen[0]["selected_causes"]] == ["Work stress", "Poor sleep"]

    def test_properties_require_symptoms(self, health_concern, demographics, sample_causes):
        with pytest.raises(RecipeApiError) as exc:
            _run(_client(lambda r: httpx.Response(200)).fetch_therapeutic_properties(
                health_concern, demographics, sample_causes, []
            ))
        assert exc.value.code == "NO_SYMPTOMS_SELECTED"

    def test_properties(self, health_concern, demographics, sample_causes, sample_symptoms):
        def handler(request):
            body = json.loads(request.content)
            assert body["step"] == "MedicalProperties"
            return httpx.Response(200, json=[{"message": {"content": json.dumps({"therapeutic_properties": [
                {"property_id": "p1", "property_name": "Calmante", "relevancy": 4},
            ]})}}])

        props = _run(_client(handler).fetch_therapeutic_properties(
            health_concern, demographics, sample_causes, sample_symptoms
        ))

        assert props[0].property_name == "Calmante"
        assert props[0].relevancy == 4


class TestOils:

    def _props(self):
        return (
            TherapeuticProperty(property_id="p1", property_name="Calmante"),
            TherapeuticProperty(property_id="p2", property_name="Analgésico"),
        )

    def test_property_identity_is_kept(self, health_concern, demographics, sample_causes, sample_symptoms):
        def handler(request):
            return httpx.Response(200, json={"suggested_oils": [{"name_english": "Lavender", "relevancy": 5}]})

        result = _run(_client(handler).fetch_suggested_oils_for_property(
            health_concern, demographics, sample_causes, sample_symptoms, self._props()[0]
        ))

        assert result.property_id == "p1"
        assert result.property_name == "Calmante"
        assert result.suggested_oils[0].name_english == "Lavender"

    def test_partial_success(self, health_concern, demographics, sample_causes, sample_symptoms):
        def handler(request):
            prop = json.loads(request.content)["therapeutic_properties"][0]
            if prop["property_id"] == "p2":
                return httpx.Response(400, json={"error": "Bad Request", "message": "nope"})
            return httpx.Response(200, json={"suggested_oils": [{"name_english": "Lavender"}]})

        results = _run(_client(handler).fetch_suggested_oils_for_all_properties(
            health_concern, demographics, sample_causes, sample_symptoms, self._props()
        ))

        assert [r.property_id for r in results] == ["p1"]

    def test_all_failed(self, health_concern, demographics, sample_causes, sample_symptoms):
        def handler(request):
            return httpx.Response(404, json={"error": "Not Found", "message": "gone"})

        with pytest.raises(RecipeApiError) as exc:
            _run(_client(handler).fetch_suggested_oils_for_all_properties(
                health_concern, demographics, sample_causes, sample_symptoms, self._props()
            ))

        assert exc.value.code == "ALL_OILS_FETCH_FAILED"

    def test_requires_properties(self, health_concern, demographics, sample_causes, sample_symptoms):
        with pytest.raises(RecipeApiError) as exc:
            _run(_client(lambda r: httpx.Response(200)).fetch_suggested_oils_for_all_properties(
                health_concern, demographics, sample_causes, sample_symptoms, []
            ))
        assert exc.value.code == "NO_PROPERTIES_PROVIDED"


class TestHealth:

    def test_healthy(self):
        assert _run(_client(lambda r: httpx.Response(200, json={})).check_api_health()) is True

    def test_unreachable(self):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        assert _run(_client(handler).check_api_health()) is False
