#!/usr/bin/env python3
"""
Tests for request/response models and the error hierarchy.
"""

import pytest

from mistral_client.llm.exceptions import (
    MistralApiError,
    MistralRateLimitError,
    MistralValidationError,
)
from mistral_client.llm.models import (
    MODELS,
    AudioTranscriptionRequest,
    ChatCompletionRequest,
    DetailErrorResponse,
    JsonSchema,
    Message,
    ModelErrorResponse,
    ValidationResult,
    extract_all_text,
    extract_answer_text,
    extract_thinking_text,
)


class TestChatCompletionRequest:

    def test_payload_leaves_out_unset_fields(self):
        request = ChatCompletionRequest(
            model=MODELS["small"], messages=[Message.user("hi")]
        )
        payload = request.to_payload(stream=True)

        assert payload == {
            "model": "mistral-small-latest",
            "messages": [{"role": "user", "content": "hi"}],
            "safe_prompt": False,
            "stream": True,
        }

    def test_fluent_helpers(self):
        request = (
            ChatCompletionRequest(model="m", messages=[Message.system("be brief")])
            .with_stops("END", "STOP")
            .as_json()
        )
        payload = request.to_payload()
        assert payload["stop"] == ["END", "STOP"]
        assert payload["response_format"] == {"type": "json_object"}

        request.with_stop("DONE")
        assert request.to_payload()["stop"] == "DONE"

    def test_json_schema_serialized_under_schema_key(self):
        schema = JsonSchema(name="answer", schema={"type": "object"})
        payload = ChatCompletionRequest(model="m").as_json_schema(schema).to_payload()
        assert payload["response_format"] == {
            "type": "json_schema",
            "json_schema": {"name": "answer", "schema": {"type": "object"}, "strict": False},
        }


class TestMessageContent:

    STRUCTURED = {
        "role": "assistant",
        "content": [
            {"type": "thinking", "thinking": [{"type": "text", "text": "plan"}]},
            {"type": "text", "text": "Answer"},
            {"type": "reference", "reference_ids": [1]},
        ],
    }

    def test_unknown_chunks_dropped(self):
        message = Message.model_validate(self.STRUCTURED)
        assert len(message.content) == 2

    def test_text_extraction(self):
        content = Message.model_validate(self.STRUCTURED).content
        assert extract_answer_text(content) == "Answer"
        assert extract_thinking_text(content) == "plan"
        assert extract_all_text(content) == "planAnswer"

    def test_plain_string_content(self):
        message = Message.assistant("plain")
        assert message.text == "plain"
        assert extract_thinking_text(message.content) == ""
        assert extract_all_text(None) == ""

    def test_role_check(self):
        assert Message(role="tool", content="42").is_valid()
        assert not Message(role="robot", content="hi").is_valid()


class TestErrorModels:

    def test_detail_messages(self):
        error = DetailErrorResponse.model_validate(
            {"detail": [{"type": "missing", "msg": "first"}, {"type": "x", "msg": None}]}
        )
        assert error.first_message() == "first"
        assert error.all_messages() == "first; Unknown error"
        assert DetailErrorResponse(detail=[]).first_message() == "Unknown error"

    def test_friendly_message_fallbacks(self):
        assert ModelErrorResponse(message="Explicit").user_friendly_message() == "Explicit"
        assert (
            ModelErrorResponse(type="authentication_error").user_friendly_message()
            == "Authentication failed. Please check your API key."
        )
        assert (
            ModelErrorResponse(type="brand_new").user_friendly_message()
            == "An unexpected error occurred."
        )

    def test_validation_result(self):
        assert ValidationResult.success().errors == []
        failed = ValidationResult.failure("a", "b")
        assert not failed.is_valid
        assert failed.errors == ["a", "b"]


class TestRetryGuidance:

    def test_status_codes(self):
        assert MistralApiError("x", status_code=503).retry_delay_seconds == 30
        assert MistralApiError("x", status_code=503).is_retryable
        plain = MistralApiError("x", status_code=400)
        assert not plain.is_retryable
        assert plain.retry_delay_seconds is None

    def test_error_type_wins_over_status(self):
        error = MistralApiError("x", status_code=400, error_type="server_error")
        assert error.is_retryable
        assert error.retry_delay_seconds == 5

    def test_rate_limit_uses_retry_after(self):
        assert MistralRateLimitError("x", retry_after=2.5).retry_delay_seconds == 2
        assert MistralRateLimitError("x").retry_delay_seconds == 60

    def test_validation_error_message(self):
        error = MistralValidationError("Model is required.")
        assert error.validation_errors == ["Model is required."]
        assert error.status_code == 400
        assert str(error) == "Request validation failed: Model is required."


class TestAudioTranscriptionRequest:

    def test_from_bytes_validation(self):
        with pytest.raises(ValueError, match="must not be empty"):
            AudioTranscriptionRequest.from_bytes(b"", "a.wav")
        with pytest.raises(ValueError, match="File name is required"):
            AudioTranscriptionRequest.from_bytes(b"x", "  ")
        with pytest.raises(ValueError, match="invalid characters"):
            AudioTranscriptionRequest.from_bytes(b"x", "dir/a.wav")
        with pytest.raises(ValueError, match="must not exceed 255"):
            AudioTranscriptionRequest.from_bytes(b"x", "a" * 252 + ".wav")

    def test_from_file_url_requires_http(self):
        assert AudioTranscriptionRequest.from_file_url("HTTPS://example.com/a.mp3").file_url
        for url in ("ftp://example.com/a.mp3", "example.com/a.mp3", ""):
            with pytest.raises(ValueError, match="http or https"):
                AudioTranscriptionRequest.from_file_url(url)

    def test_from_file_id_requires_value(self):
        with pytest.raises(ValueError, match="File id is required"):
            AudioTranscriptionRequest.from_file_id(" ")

    def test_form_fields(self):
        request = AudioTranscriptionRequest.from_file_id("file-1")
        request.language = "en"
        request.diarize = True
        request.context_bias = ["Mistral", "Voxtral"]
        request.timestamp_granularities = ["segment"]

        assert request.to_form(stream=True) == [
            ("model", "voxtral-mini-latest"),
            ("file_id", "file-1"),
            ("language", "en"),
            ("diarize", "true"),
            ("context_bias", "Mistral"),
            ("context_bias", "Voxtral"),
            ("timestamp_granularities", "segment"),
            ("stream", "true"),
        ]
