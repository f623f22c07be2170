"""Tests for the rule-based input classifier."""
import pytest

from app.tutor.input_classifier import (
    classify, detect_chat_mode, detect_language, extract_audio_phrase, extract_name,
    has_name_content, is_ack_only, is_audio_request, is_sales_intent, normalize, tokenize,
)


class TestNormalize:
    def test_strips_accents_and_case(self):
        assert normalize("  Olá   MUNDO ") == "ola mundo"

    def test_tokenize_drops_punctuation(self):
        assert tokenize("Hello, my name is!") == ["hello", "my", "name", "is"]

    def test_tokenize_french_apostrophe(self):
        assert tokenize("J'habite à Luanda") == ["j", "habite", "a", "luanda"]

    def test_empty(self):
        assert normalize("") == ""
        assert tokenize("") == []


class TestAckLexicon:
    @pytest.mark.parametrize("text", [
        "ok", "OK", "Ok!", "sim", "certo", "entendi", "👍", "👍🏽", "👌", "ok ok",
        "tá bem", "está bem", "beleza", "sim sim", "❤️",
    ])
    def test_acks(self, text):
        assert is_ack_only(text)

    @pytest.mark.parametrize("text", [
        "Nice to meet you", "ok nice to meet you", "I am from Angola", "", "   ",
        "ok ok ok ok", "sim, o meu nome é Ana",
    ])
    def test_not_acks(self, text):
        assert not is_ack_only(text)


class TestLanguageDetection:
    @pytest.mark.parametrize("text", ["inglês", "ingles", "English", "quero inglês", "INGLÊS por favor"])
    def test_english(self, text):
        assert detect_language(text) == "en"

    @pytest.mark.parametrize("text", ["francês", "frances", "French", "français", "quero aprender francês"])
    def test_french(self, text):
        assert detect_language(text) == "fr"

    def test_both(self):
        assert detect_language("inglês e francês") == "both"
        assert detect_language("os dois") == "both"

    def test_neither(self):
        assert detect_language("espanhol") is None
        assert detect_language("não sei") is None


class TestNameExtraction:
    @pytest.mark.parametrize("text,name", [
        ("sou a Ana", "Ana"),
        ("Sou o Pedro", "Pedro"),
        ("my name is John", "John"),
        ("I'm Maria", "Maria"),
        ("me chamo joão", "João"),
        ("chamo-me Beatriz", "Beatriz"),
        ("o meu nome é Carla", "Carla"),
        ("Olá! O meu nome é Carla", "Carla"),
        ("Je m'appelle Luc", "Luc"),
        ("Edson", "Edson"),
        ("oi, Edson aqui", "Edson"),
    ])
    def test_patterns(self, text, name):
        assert extract_name(text) == name

    def test_nothing_usable(self):
        assert extract_name("oi") is None
        assert extract_name("") is None

    def test_greeting_only_has_no_name_content(self):
        assert not has_name_content("oi")
        assert not has_name_content("Olá, bom dia!")
        assert not has_name_content("ok")
        assert has_name_content("sou a Ana")


class TestAudioRequests:
    @pytest.mark.parametrize("text", [
        "audio: Good morning", "áudio de bonjour", "pronúncia de Nice to meet you",
        "como se pronuncia hello", "quero ouvir", "como se diz bye",
    ])
    def test_detected(self, text):
        assert is_audio_request(text)

    def test_not_detected(self):
        assert not is_audio_request("Nice to meet you")
        assert not is_audio_request("I am from Angola")

    @pytest.mark.parametrize("text,phrase", [
        ("audio: Good morning", "Good morning"),
        ("Áudio - Nice to meet you", "Nice to meet you"),
        ("áudio de bonjour", "bonjour"),
        ("pronúncia de Au revoir?", "Au revoir"),
        ('manda áudio "I live in Luanda"', "I live in Luanda"),
        ("como se pronuncia J'habite à Luanda", "J'habite à Luanda"),
        ("como se diz Good night", "Good night"),
        ("pronuncia Bonne nuit", "Bonne nuit"),
    ])
    def test_phrase_extraction(self, text, phrase):
        assert extract_audio_phrase(text) == phrase

    def test_no_phrase(self):
        assert extract_audio_phrase("quero ouvir") is None
        assert extract_audio_phrase("manda áudio") is None


class TestSalesAndModes:
    def test_sales_intent(self):
        assert is_sales_intent("Quanto custa o premium?")
        assert is_sales_intent("quero pagar")
        assert not is_sales_intent("Nice to meet you")

    def test_chat_mode(self):
        assert detect_chat_mode("modo conversa") == "chat"
        assert detect_chat_mode("voltar à aula") == "lesson"
        assert detect_chat_mode("hello") is None


class TestClassify:
    def test_empty(self):
        assert classify("", "learning")["category"] == "EMPTY"
        assert classify("...", "learning")["category"] == "EMPTY"

    def test_ack_wins_in_every_stage(self):
        for stage in ("ask_name", "ask_language", "learning"):
            assert classify("ok", stage)["category"] == "ACK"

    def test_name_stage(self):
        result = classify("sou a Ana", "ask_name")
        assert result["category"] == "NAME"
        assert result["extras"]["name"] == "Ana"
        assert result["extras"]["has_content"] is True

    def test_name_stage_greeting(self):
        result = classify("oi", "ask_name")
        assert result["category"] == "NAME"
        assert result["extras"]["has_content"] is False
        assert result["extras"]["name"] is None

    def test_language_stage(self):
        result = classify("quero inglês", "ask_language")
        assert result["category"] == "LANGUAGE_CHOICE"
        assert result["extras"]["language"] == "en"

    def test_language_stage_unknown(self):
        assert classify("espanhol", "ask_language")["category"] == "OTHER"

    def test_learning_answer(self):
        assert classify("I work as a teacher", "learning")["category"] == "ANSWER"

    def test_learning_audio_request(self):
        result = classify("audio: Good morning", "learning")
        assert result["category"] == "AUDIO_REQUEST"
        assert result["extras"]["phrase"] == "Good morning"

    def test_mode_switch(self):
        result = classify("modo conversa", "learning")
        assert result["category"] == "MODE_SWITCH"
        assert result["extras"]["mode"] == "chat"

    def test_sales_intent_always_present(self):
        for text in ("ok", "quero premium", ""):
            assert "sales_intent" in classify(text, "learning")["extras"]
        assert classify("quero premium", "ask_name")["extras"]["sales_intent"] is True
