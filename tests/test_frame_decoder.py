"""Tests for the line-delimited JSON frame decoder."""

from pulseclient.processors.frame_decoder import FrameDecoder, MessageType


class TestRecordSplitting:
    def test_multiple_records_in_one_chunk(self):
        decoder = FrameDecoder()

        messages = list(decoder.decode(
            b'{"type":"heartbeat"}\n{"type":"login"}\n{"type":"msg","msg":{"count":1}}\n'
        ))

        assert [m.message_type for m in messages] == [
            MessageType.HEARTBEAT,
            MessageType.LOGIN,
            MessageType.MSG,
        ]
        assert messages[2].data["msg"] == {"count": 1}

    def test_unterminated_complete_record_is_emitted(self):
        decoder = FrameDecoder()

        messages = list(decoder.decode(b'{"type":"heartbeat"}'))

        assert len(messages) == 1
        assert messages[0].message_type is MessageType.HEARTBEAT
        assert not decoder.has_pending()

    def test_blank_lines_and_crlf_are_ignored(self):
        decoder = FrameDecoder()

        messages = list(decoder.decode(b'\n\r\n{"type":"heartbeat"}\r\n\n'))

        assert len(messages) == 1
        assert decoder.get_stats()["total_errors"] == 0

    def test_decode_is_lazy(self):
        decoder = FrameDecoder()

        generator = decoder.decode(b'{"type":"heartbeat"}\n{"type":"login"}\n')
        assert decoder.get_stats()["total_parsed"] == 0

        first = next(generator)
        assert first.message_type is MessageType.HEARTBEAT
        assert decoder.get_stats()["total_parsed"] == 1


class TestMalformedRecords:
    def test_malformed_record_does_not_stop_later_records(self):
        decoder = FrameDecoder()

        messages = list(decoder.decode(b'{not json\n{"type":"heartbeat"}\n'))

        assert [m.message_type for m in messages] == [MessageType.HEARTBEAT]
        assert decoder.get_stats()["total_errors"] == 1

    def test_non_object_record_is_dropped(self):
        decoder = FrameDecoder()

        messages = list(decoder.decode(b'[1, 2, 3]\n"text"\n{"type":"login"}\n'))

        assert [m.message_type for m in messages] == [MessageType.LOGIN]
        assert decoder.get_stats()["total_errors"] == 2

    def test_unknown_and_missing_type(self):
        decoder = FrameDecoder()

        messages = list(decoder.decode(b'{"type":"welcome"}\n{"kind":"x"}\n{"type":5}\n'))

        assert [m.message_type for m in messages] == [MessageType.UNKNOWN] * 3


class TestChunkBoundaries:
    def test_record_split_across_chunks_is_reassembled(self):
        decoder = FrameDecoder()

        first = list(decoder.decode(b'{"type":"heartbeat"}\n{"type":"ms'))
        assert len(first) == 1
        assert decoder.has_pending()

        second = list(decoder.decode(b'g","msg":{"count":23,"reply":"k"}}\n'))
        assert len(second) == 1
        assert second[0].message_type is MessageType.MSG
        assert second[0].data["msg"]["count"] == 23
        assert not decoder.has_pending()

    def test_stale_fragment_is_dropped_when_next_record_is_complete(self):
        decoder = FrameDecoder()

        assert list(decoder.decode(b'{not json')) == []
        assert decoder.has_pending()

        messages = list(decoder.decode(b'{"type":"heartbeat"}\n'))

        assert [m.message_type for m in messages] == [MessageType.HEARTBEAT]
        assert decoder.get_stats()["total_errors"] == 1

    def test_multibyte_character_split_across_chunks(self):
        decoder = FrameDecoder()
        data = '{"type":"login","msg":"café"}\n'.encode("utf-8")
        split = data.index(b"\xc3") + 1

        assert list(decoder.decode(data[:split])) == []
        messages = list(decoder.decode(data[split:]))

        assert messages[0].data["msg"] == "café"

    def test_oversized_fragment_is_not_held(self):
        decoder = FrameDecoder(max_pending_bytes=16)

        assert list(decoder.decode(b'{"type":"heartbeat","padding":"xxxxxxxx')) == []

        assert not decoder.has_pending()
        assert decoder.get_stats()["total_errors"] == 1

    def test_reset_discards_fragment(self):
        decoder = FrameDecoder()
        list(decoder.decode(b'{"type":"hea'))

        decoder.reset()

        messages = list(decoder.decode(b'{"type":"login"}\n'))
        assert [m.message_type for m in messages] == [MessageType.LOGIN]

    def test_garbage_fragment_does_not_swallow_unterminated_records(self):
        decoder = FrameDecoder()
        assert list(decoder.decode(b'{not json')) == []

        emitted = []
        for _ in range(3):
            emitted.extend(decoder.decode(b'{"type":"heartbeat"}'))

        assert [m.message_type for m in emitted] == [MessageType.HEARTBEAT] * 3
        assert not decoder.has_pending()
        assert decoder.get_stats()["total_errors"] == 1

    def test_record_split_across_three_chunks(self):
        decoder = FrameDecoder()

        assert list(decoder.decode(b'{"type":"ms')) == []
        assert list(decoder.decode(b'g","msg":{"co')) == []
        messages = list(decoder.decode(b'unt":7,"reply":"k"}}'))

        assert messages[0].data["msg"]["count"] == 7
        assert decoder.get_stats()["total_errors"] == 0
