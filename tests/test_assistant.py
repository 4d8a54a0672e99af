import pytest
import requests

import document_service
import tts_service
from ai_service import AIAssistantService, AssistantError, AssistantRateLimited, ai_service
from test_documents import CONTAINER, OPF, chapter, make_epub

CONVERSATION = {"messages": [{"role": "user", "content": "Do you sell rulers?"}]}


class FakeResponse:
    def __init__(self, status_code=200, content=b"", text=""):
        self.status_code = status_code
        self.ok = status_code < 400
        self.content = content
        self.text = text


class TestChat:
    def test_reply(self, client, monkeypatch):
        seen = {}

        def fake_chat(messages):
            seen["messages"] = messages
            return "Yes, we stock 30cm rulers."

        monkeypatch.setattr(ai_service, "chat", fake_chat)
        response = client.post("/assistant/chat", json=CONVERSATION)
        assert response.status_code == 200
        assert response.json() == {"message": "Yes, we stock 30cm rulers."}
        assert seen["messages"] == [{"role": "user", "content": "Do you sell rulers?"}]

    def test_rate_limit_is_reported_in_band(self, client, monkeypatch):
        def limited(messages):
            raise AssistantRateLimited("quota")

        monkeypatch.setattr(ai_service, "chat", limited)
        response = client.post("/assistant/chat", json=CONVERSATION)
        assert response.status_code == 200
        assert response.json()["message"] == "I'm receiving too many requests. Please try again in a moment."

    def test_other_failures_apologise(self, client, monkeypatch):
        def broken(messages):
            raise AssistantError("boom")

        monkeypatch.setattr(ai_service, "chat", broken)
        response = client.post("/assistant/chat", json=CONVERSATION)
        assert response.status_code == 200
        assert response.json()["message"] == "Sorry, I encountered an error. Please try again."

    def test_missing_key_apologises(self, client, monkeypatch):
        monkeypatch.setattr(ai_service, "is_available", False)
        response = client.post("/assistant/chat", json=CONVERSATION)
        assert response.json()["message"] == "Sorry, I encountered an error. Please try again."

    def test_needs_at_least_one_message(self, client):
        assert client.post("/assistant/chat", json={"messages": []}).status_code == 422

    def test_roles_map_to_model_roles(self):
        contents = AIAssistantService._to_contents([
            {"role": "user", "content": "hi"},
            {"role": "assistant", "content": "hello"},
        ])
        assert [c["role"] for c in contents] == ["user", "model"]
        assert contents[1]["parts"] == ["hello"]


class TestExtractText:
    def upload(self, client, user, name, data):
        return client.post(
            "/assistant/extract-text",
            files={"file": (name, data, "application/octet-stream")},
            headers=user["headers"],
        )

    def test_epub_upload(self, client, user):
        data = make_epub({
            "META-INF/container.xml": CONTAINER,
            "OEBPS/content.opf": OPF,
            "OEBPS/text/chapter1.xhtml": chapter("One"),
            "OEBPS/text/chapter2.xhtml": chapter("Two"),
        })
        response = self.upload(client, user, "book.epub", data)
        assert response.status_code == 200
        assert response.json() == {"filename": "book.epub", "text": "Two\n\nOne", "characters": 8}

    def test_requires_login(self, client):
        response = client.post("/assistant/extract-text", files={"file": ("a.epub", b"x", "application/epub+zip")})
        assert response.status_code == 401

    def test_wrong_type(self, client, user):
        assert self.upload(client, user, "notes.txt", b"hello").status_code == 400

    def test_no_text_found(self, client, user):
        data = make_epub({"index.html": "<html><body></body></html>"})
        assert self.upload(client, user, "blank.epub", data).status_code == 422

    def test_oversized_upload_stops_at_limit(self, client, user, monkeypatch):
        monkeypatch.setattr(document_service, "MAX_UPLOAD_BYTES", 16)

        def unexpected(filename, data):
            raise AssertionError("oversized uploads should not reach extraction")

        monkeypatch.setattr(document_service, "extract_text", unexpected)
        response = self.upload(client, user, "big.pdf", b"%PDF" + b"0" * 100)
        assert response.status_code == 400
        assert response.json()["detail"] == "File size must be less than 10MB"

    def test_scanned_pdf_without_key(self, client, user, monkeypatch):
        monkeypatch.setattr(document_service, "pdf_extract_text", lambda stream: "")
        monkeypatch.setattr(ai_service, "is_available", False)
        assert self.upload(client, user, "scan.pdf", b"%PDF-1.4").status_code == 503


class TestAudiobook:
    TEXT = "Once upon a time there was a library in Beirut."

    def test_voices(self, client):
        body = client.get("/assistant/voices").json()
        assert body["default"] == "alloy"
        assert {v["id"] for v in body["voices"]} == set(tts_service.VOICES)

    def test_generates_mp3(self, client, user, monkeypatch):
        calls = {}

        def fake_post(url, headers, json, timeout):
            calls.update(url=url, auth=headers["Authorization"], payload=json)
            return FakeResponse(content=b"ID3fake-mp3")

        monkeypatch.setattr(tts_service, "OPENAI_API_KEY", "sk-test")
        monkeypatch.setattr(tts_service.requests, "post", fake_post)
        response = client.post(
            "/assistant/audiobook", json={"text": self.TEXT, "voice": "nova"}, headers=user["headers"]
        )
        assert response.status_code == 200
        assert response.headers["content-type"] == "audio/mpeg"
        assert response.content == b"ID3fake-mp3"
        assert calls["auth"] == "Bearer sk-test"
        assert calls["payload"]["voice"] == "nova"
        assert calls["payload"]["model"] == "tts-1"

    def test_short_text(self, client, user, monkeypatch):
        monkeypatch.setattr(tts_service, "OPENAI_API_KEY", "sk-test")
        response = client.post("/assistant/audiobook", json={"text": "Hi"}, headers=user["headers"])
        assert response.status_code == 400

    def test_unknown_voice(self, client, user, monkeypatch):
        monkeypatch.setattr(tts_service, "OPENAI_API_KEY", "sk-test")
        response = client.post(
            "/assistant/audiobook", json={"text": self.TEXT, "voice": "rachel"}, headers=user["headers"]
        )
        assert response.status_code == 400

    def test_missing_key(self, client, user, monkeypatch):
        monkeypatch.setattr(tts_service, "OPENAI_API_KEY", None)
        response = client.post("/assistant/audiobook", json={"text": self.TEXT}, headers=user["headers"])
        assert response.status_code == 503

    def test_bad_input_is_checked_before_the_key(self, client, user, monkeypatch):
        monkeypatch.setattr(tts_service, "OPENAI_API_KEY", None)
        short = client.post("/assistant/audiobook", json={"text": "Hi"}, headers=user["headers"])
        assert short.status_code == 400
        voice = client.post(
            "/assistant/audiobook", json={"text": self.TEXT, "voice": "rachel"}, headers=user["headers"]
        )
        assert voice.status_code == 400

    def test_provider_error(self, client, user, monkeypatch):
        monkeypatch.setattr(tts_service, "OPENAI_API_KEY", "sk-test")
        monkeypatch.setattr(
            tts_service.requests, "post",
            lambda *args, **kwargs: FakeResponse(status_code=500, text="upstream down"),
        )
        response = client.post("/assistant/audiobook", json={"text": self.TEXT}, headers=user["headers"])
        assert response.status_code == 502

    def test_network_error(self, monkeypatch):
        def unreachable(*args, **kwargs):
            raise requests.ConnectionError("no route")

        monkeypatch.setattr(tts_service.requests, "post", unreachable)
        with pytest.raises(tts_service.SpeechError):
            tts_service.generate_speech(self.TEXT, api_key="sk-test")

    def test_long_text_is_truncated(self):
        assert len(tts_service.prepare_text("a" * 5000)) == tts_service.MAX_TTS_CHARS
