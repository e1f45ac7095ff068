"""Tests for line splitting and the dual-pipe multiplexer."""

from __future__ import annotations

import os
import random


class TestLineBuffer:
    """Splitting byte chunks into complete lines."""

    def test_single_complete_line(self) -> None:
        from runserver.process.multiplexer import LineBuffer

        buf = LineBuffer()
        assert buf.feed(b"hello\n") == [b"hello"]
        assert buf.pending == 0

    def test_partial_line_held_back(self) -> None:
        from runserver.process.multiplexer import LineBuffer

        buf = LineBuffer()
        assert buf.feed(b"hel") == []
        assert buf.pending == 3
        assert buf.feed(b"lo\nwor") == [b"hello"]
        assert buf.feed(b"ld\n") == [b"world"]

    def test_empty_lines_kept(self) -> None:
        from runserver.process.multiplexer import LineBuffer

        assert LineBuffer().feed(b"a\n\nb\n") == [b"a", b"", b"b"]

    def test_arbitrary_chunking_matches_split(self) -> None:
        from runserver.process.multiplexer import LineBuffer

        rng = random.Random(1234)
        data = b"".join(
            bytes(rng.choice(b"abc \t\n") for _ in range(rng.randint(0, 40))) for _ in range(200)
        )
        for _ in range(20):
            buf = LineBuffer()
            lines: list[bytes] = []
            pos = 0
            while pos < len(data):
                step = rng.randint(1, 17)
                lines.extend(buf.feed(data[pos : pos + step]))
                pos += step
            expected = data.split(b"\n")
            tail = expected.pop()
            assert lines == expected
            assert buf.pending == len(tail)

    def test_overlong_fragment_emitted_at_cap(self) -> None:
        from runserver.process.multiplexer import LineBuffer

        buf = LineBuffer(max_line=8)
        assert buf.feed(b"abc") == []
        assert buf.feed(b"defghijklmnopqrstu") == [b"abcdefgh", b"ijklmnop"]
        assert buf.pending == len(b"qrstu")
        assert buf.feed(b"v\n") == [b"qrstuv"]
        assert buf.pending == 0

    def test_default_cap_bounds_buffer(self) -> None:
        from runserver.process.multiplexer import MAX_LINE, READ_CHUNK, LineBuffer

        buf = LineBuffer()
        for _ in range(40):
            buf.feed(b"x" * READ_CHUNK)
            assert buf.pending < MAX_LINE

    def test_unterminated_tail_dropped_at_eof(self) -> None:
        from runserver.process.multiplexer import LineBuffer

        buf = LineBuffer()
        assert buf.feed(b"done\npartial") == [b"done"]
        assert buf.discard() == len(b"partial")
        assert buf.pending == 0


def _pipe_source(name: str, sink: list[bytes]):  # noqa: ANN202
    from runserver.process.multiplexer import StreamSource

    r, w = os.pipe()
    return StreamSource(r, name, sink.append), w


class TestLineMultiplexer:
    """Draining two pipes with independent end-of-stream."""

    def test_dispatches_lines_per_stream(self) -> None:
        from runserver.process.multiplexer import LineMultiplexer

        out: list[bytes] = []
        err: list[bytes] = []
        out_src, out_w = _pipe_source("stdout", out)
        err_src, err_w = _pipe_source("stderr", err)
        mux = LineMultiplexer([out_src, err_src], poll_interval=0.05)
        try:
            os.write(out_w, b"one\ntwo\n")
            os.write(err_w, b"oops\n")
            mux.poll()
            assert out == [b"one", b"two"]
            assert err == [b"oops"]
        finally:
            os.close(out_w)
            os.close(err_w)
            mux.close()

    def test_both_ready_streams_served_in_one_round(self) -> None:
        from runserver.process.multiplexer import LineMultiplexer

        out: list[bytes] = []
        err: list[bytes] = []
        out_src, out_w = _pipe_source("stdout", out)
        err_src, err_w = _pipe_source("stderr", err)
        mux = LineMultiplexer([out_src, err_src], poll_interval=0.05)
        try:
            os.write(out_w, b"a\n")
            os.write(err_w, b"b\n")
            assert mux.poll() == 2
        finally:
            os.close(out_w)
            os.close(err_w)
            mux.close()

    def test_timeout_without_data(self) -> None:
        from runserver.process.multiplexer import LineMultiplexer

        out: list[bytes] = []
        src, w = _pipe_source("stdout", out)
        mux = LineMultiplexer([src], poll_interval=0.01)
        try:
            assert mux.poll() == 0
            assert out == []
            assert src.closed is False
        finally:
            os.close(w)
            mux.close()

    def test_independent_eof(self) -> None:
        from runserver.process.multiplexer import LineMultiplexer

        out: list[bytes] = []
        err: list[bytes] = []
        out_src, out_w = _pipe_source("stdout", out)
        err_src, err_w = _pipe_source("stderr", err)
        mux = LineMultiplexer([out_src, err_src], poll_interval=0.05)
        try:
            os.write(out_w, b"last\nunterminated")
            os.close(out_w)
            for _ in range(3):
                mux.poll()
            assert out == [b"last"]
            assert out_src.closed is True
            assert err_src.closed is False
            assert mux.all_closed is False

            os.write(err_w, b"still flowing\n")
            mux.poll()
            assert err == [b"still flowing"]

            os.close(err_w)
            mux.poll()
            assert mux.all_closed is True
        finally:
            mux.close()

    def test_long_line_across_reads(self) -> None:
        from runserver.process.multiplexer import LineMultiplexer

        out: list[bytes] = []
        src, w = _pipe_source("stdout", out)
        mux = LineMultiplexer([src], poll_interval=0.05, read_chunk=7)
        try:
            os.write(w, b"x" * 50 + b"\n")
            os.close(w)
            while not mux.all_closed:
                mux.poll()
            assert out == [b"x" * 50]
        finally:
            mux.close()
