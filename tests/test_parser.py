import pytest

from ahichat.parser import ReplyFormatError, parse_chat_reply, parse_session_open


class TestParseChatReply:
    def test_content_field(self):
        reply = parse_chat_reply(
            {"messages": [{"id": "r1", "role": "assistant", "content": "Hi"}], "allowMultiMessage": True}
        )

        assert [(c.id, c.text) for c in reply.chunks] == [("r1", "Hi")]
        assert reply.allow_multi_message is True

    def test_legacy_text_field_and_plain_strings(self):
        reply = parse_chat_reply({"messages": [{"text": "one"}, "two"]})

        assert [c.text for c in reply.chunks] == ["one", "two"]

    def test_content_preferred_over_text(self):
        reply = parse_chat_reply({"messages": [{"content": "new", "text": "old"}]})
        assert reply.chunks[0].text == "new"

    @pytest.mark.parametrize("body", [{}, {"messages": None}, {"messages": []}])
    def test_no_messages_is_a_valid_empty_reply(self, body):
        assert parse_chat_reply(body).chunks == []

    def test_missing_text_becomes_empty_chunk(self):
        reply = parse_chat_reply({"messages": [{"content": 42}, {"role": "assistant"}, None]})
        assert [c.text for c in reply.chunks] == ["", "", ""]

    @pytest.mark.parametrize("body", [None, "text", ["a"], 3])
    def test_non_object_body_raises(self, body):
        with pytest.raises(ReplyFormatError):
            parse_chat_reply(body)

    def test_non_list_messages_raises(self):
        with pytest.raises(ReplyFormatError):
            parse_chat_reply({"messages": "Hi"})

    def test_response_mode_fallback(self):
        assert parse_chat_reply({"messages": [], "responseMode": "MULTI"}).allow_multi_message
        assert not parse_chat_reply({"messages": [], "responseMode": "single"}).allow_multi_message
        assert not parse_chat_reply({"messages": []}).allow_multi_message

    def test_explicit_flag_wins_over_response_mode(self):
        reply = parse_chat_reply(
            {"messages": [], "responseMode": "multi", "allowMultiMessage": False}
        )
        assert reply.allow_multi_message is False
        assert reply.response_mode == "multi"


class TestParseSessionOpen:
    def test_greeting(self):
        assert parse_session_open({"message": "Good morning"}) == "Good morning"

    @pytest.mark.parametrize("body", [{}, {"message": ""}, {"message": "  \n"}, {"message": 7}])
    def test_nothing_to_show(self, body):
        assert parse_session_open(body) is None

    def test_non_object_raises(self):
        with pytest.raises(ReplyFormatError):
            parse_session_open("hello")
