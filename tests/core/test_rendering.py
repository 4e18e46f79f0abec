"""Tests for the PDF renderer seam."""

import time

import pytest
from types import SimpleNamespace


INVOICE = SimpleNamespace(invoice_number="FAC2025-0001")


class TestRenderWithTimeout:
    """Tests for render_with_timeout."""

    def test_returns_renderer_bytes(self):
        from core.rendering import render_with_timeout

        pdf = render_with_timeout(lambda *args: bytearray(b"%PDF"), INVOICE, None, None, {}, 1.0)

        assert pdf == b"%PDF"
        assert isinstance(pdf, bytes)

    def test_passes_template_through(self):
        from core.rendering import render_with_timeout

        seen = {}

        def render(invoice, client, issuer, template):
            seen.update(template)
            return b"%PDF"

        render_with_timeout(render, INVOICE, None, None, {"name": "Classique"}, 1.0)

        assert seen == {"name": "Classique"}

    def test_slow_render_times_out(self):
        from core.exceptions import RenderTimeoutError
        from core.rendering import render_with_timeout

        def slow(*args):
            time.sleep(0.5)
            return b"%PDF"

        started = time.monotonic()
        with pytest.raises(RenderTimeoutError):
            render_with_timeout(slow, INVOICE, None, None, {}, 0.05)

        assert time.monotonic() - started < 0.4

    def test_renderer_exception_becomes_render_error(self):
        from core.exceptions import RenderError
        from core.rendering import render_with_timeout

        def broken(*args):
            raise RuntimeError("font missing")

        with pytest.raises(RenderError, match="font missing"):
            render_with_timeout(broken, INVOICE, None, None, {}, 1.0)

    @pytest.mark.parametrize("result", [b"", None, "text"])
    def test_empty_or_non_bytes_is_render_error(self, result):
        from core.exceptions import RenderError
        from core.rendering import render_with_timeout

        with pytest.raises(RenderError, match="no content"):
            render_with_timeout(lambda *args: result, INVOICE, None, None, {}, 1.0)


class TestDefaultTemplate:
    def test_resolver_returns_copy(self):
        from core.rendering import DEFAULT_TEMPLATE, default_template_resolver

        template = default_template_resolver(None)
        template["name"] = "Changed"

        assert DEFAULT_TEMPLATE["name"] == "Moderne"
