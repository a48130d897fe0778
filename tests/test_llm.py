from types import SimpleNamespace

from voice_assistant.app.llm import (
    END_CONVERSATION_TOOL,
    ResponseGenerator,
    parse_should_exit,
)


def text_chunk(text):
    delta = SimpleNamespace(content=text, tool_calls=None)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


def tool_chunk(arguments):
    call = SimpleNamespace(
        index=0,
        function=SimpleNamespace(name="end_conversation", arguments=arguments),
    )
    delta = SimpleNamespace(content=None, tool_calls=[call])
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta)])


class FakeClient:
    def __init__(self, *streams):
        self.streams = list(streams)
        self.requests = []
        self.chat = SimpleNamespace(completions=SimpleNamespace(create=self._create))

    def _create(self, **kwargs):
        self.requests.append(kwargs)
        return iter(self.streams.pop(0))


def test_generate_collects_streamed_text():
    client = FakeClient([text_chunk("Hey"), text_chunk(" you!"), SimpleNamespace(choices=[])])
    chunks = []
    gen = ResponseGenerator(client, model="test-model", on_chunk=chunks.append)

    reply = gen.generate("hello")

    assert reply.text == "Hey you!"
    assert reply.should_end is False
    assert chunks == ["Hey", " you!"]
    request = client.requests[0]
    assert request["model"] == "test-model"
    assert request["stream"] is True
    assert request["tools"] == [END_CONVERSATION_TOOL]
    assert request["messages"][0]["role"] == "system"
    assert request["messages"][-1] == {"role": "user", "content": "hello"}
    assert gen.history == [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "Hey you!"},
    ]


def test_generate_reads_end_conversation_call():
    client = FakeClient(
        [text_chunk("Bye now!"), tool_chunk('{"should_'), tool_chunk('exit": true}')]
    )
    reply = ResponseGenerator(client).generate("goodbye")
    assert reply.text == "Bye now!"
    assert reply.should_end is True


def test_history_is_truncated():
    client = FakeClient(*[[text_chunk(f"reply {i}")] for i in range(3)])
    gen = ResponseGenerator(client, history_limit=4)
    for i in range(3):
        gen.generate(f"msg {i}")

    assert len(gen.history) == 4
    assert gen.history[0] == {"role": "user", "content": "msg 1"}
    assert gen.history[-1] == {"role": "assistant", "content": "reply 2"}
    # system prompt plus the truncated history at the time of the last request
    assert len(client.requests[-1]["messages"]) == 5


def test_parse_should_exit():
    assert parse_should_exit('{"should_exit": true}') is True
    assert parse_should_exit('{"should_exit": false}') is False
    assert parse_should_exit("") is False
    assert parse_should_exit("{not json") is False
    assert parse_should_exit("[1, 2]") is False
