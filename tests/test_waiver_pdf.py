import logging
from datetime import datetime, UTC

import pytest
from reportlab.lib.units import mm
from reportlab.pdfbase.pdfmetrics import stringWidth

from waiver_app.schemas.waiver import MembershipDetails
from waiver_app.services.waiver_pdf import (
    CONTENT_WIDTH,
    LINE_LIMIT,
    PAGE_HEIGHT,
    SIGNATURE_FALLBACK_TEXT,
    WaiverPdfBuilder,
    WaiverPdfInput,
    generate_waiver_pdf,
    normalize_content,
    pdf_filename,
    split_paragraphs,
    waiver_pdf_response,
)

SIGNED_AT = datetime(2024, 12, 25, 14, 30, tzinfo=UTC)
LINE_LIMIT_MM = 297 - 20 - 10


def _input(**overrides):
    data = dict(
        organization_name="Iron Fist Dojo",
        waiver_name="Standard Liability Waiver",
        waiver_version=3,
        rendered_content="<p>I accept the risks of training.</p><p>I release the academy.</p>",
        member_first_name="Sam",
        member_last_name="Lee",
        member_email="sam@example.com",
        signature_data_url="",
        signed_by_name="Sam Lee",
        signed_at=SIGNED_AT,
    )
    data.update(overrides)
    return WaiverPdfInput(**data)


def _texts(rendered):
    return [p.text for p in rendered.placements]


def test_filename_replaces_whitespace_runs():
    assert pdf_filename("De La Cruz", "John Paul", SIGNED_AT) == "waiver_De_La_Cruz_John_Paul_2024-12-25.pdf"


def test_filename_uses_utc_date():
    naive_utc = datetime(2024, 12, 31, 23, 59)
    assert pdf_filename("Lee", "Sam", naive_utc) == "waiver_Lee_Sam_2024-12-31.pdf"


def test_normalize_converts_markup_and_entities():
    text = normalize_content("<p>Line one<br/>line two</p><p>A &amp; B&nbsp;&lt;ok&gt;</p>")
    assert split_paragraphs(text) == ["Line one\nline two", "A & B <ok>"]


def test_normalize_keeps_placeholder_tokens():
    assert normalize_content("<p>Welcome to <academy_name></p>") == "Welcome to <academy_name>"


def test_normalize_strips_closed_elements_and_keeps_bare_tokens():
    assert normalize_content("<p><b>Note:</b> call <code></p>") == "Note: call <code>"


@pytest.mark.parametrize("raw", [
    "<p>Simple</p>",
    "&amp;lt;p&amp;gt;double encoded&amp;lt;/p&amp;gt;",
    "  <div><b>Bold</b> &nbsp; text</div><br><br>",
    "Keep <member_name> &lt;strong&gt;x&lt;/strong&gt;",
])
def test_normalize_is_idempotent(raw):
    once = normalize_content(raw)
    assert normalize_content(once) == once


def test_short_waiver_is_one_page_and_valid_pdf():
    rendered = generate_waiver_pdf(_input())
    assert rendered.content.startswith(b"%PDF")
    assert rendered.page_count == 1
    assert rendered.filename == "waiver_Lee_Sam_2024-12-25.pdf"


def test_long_content_breaks_pages_within_bounds():
    paragraph = "The participant assumes all risks associated with martial arts training. " * 6
    content = "".join(f"<p>{i}. {paragraph}</p>" for i in range(60))
    rendered = generate_waiver_pdf(_input(rendered_content=content))
    assert rendered.page_count > 1
    assert max(p.page for p in rendered.placements) == rendered.page_count
    assert all(p.y <= LINE_LIMIT_MM for p in rendered.placements)
    # Placements move down the page until a break resets to the top margin
    for prev, cur in zip(rendered.placements, rendered.placements[1:]):
        if cur.page == prev.page:
            assert cur.y >= prev.y


def test_layout_is_deterministic_apart_from_timestamp():
    content = "<p>" + "Waiver text that wraps across several lines. " * 80 + "</p>"
    first = generate_waiver_pdf(_input(rendered_content=content), generated_at=datetime(2025, 1, 1, tzinfo=UTC))
    second = generate_waiver_pdf(_input(rendered_content=content), generated_at=datetime(2025, 6, 1, tzinfo=UTC))
    assert first.page_count == second.page_count
    assert first.placements == second.placements


def test_signer_date_and_relationship_lines():
    rendered = generate_waiver_pdf(_input(
        signed_by_name="Jane Lee",
        signed_by_relationship="parent",
        ip_address="203.0.113.7",
    ))
    texts = _texts(rendered)
    assert "Signed by: Jane Lee (parent)" in texts
    assert "Date: December 25, 2024 at 02:30 PM" in texts
    assert "IP Address: 203.0.113.7" in texts


def test_self_signer_has_no_relationship_suffix():
    assert "Signed by: Sam Lee" in _texts(generate_waiver_pdf(_input()))


def test_signature_without_image_prefix_is_not_embedded(caplog):
    with caplog.at_level(logging.WARNING, logger="waiver_app.pdf"):
        rendered = generate_waiver_pdf(_input(signature_data_url="not-a-data-url"))
    assert SIGNATURE_FALLBACK_TEXT not in _texts(rendered)
    assert not caplog.records


def test_malformed_signature_falls_back_to_text(caplog):
    with caplog.at_level(logging.WARNING, logger="waiver_app.pdf"):
        rendered = generate_waiver_pdf(_input(signature_data_url="data:image/png;base64,bm90IGFuIGltYWdl"))
    assert rendered.content.startswith(b"%PDF")
    assert SIGNATURE_FALLBACK_TEXT in _texts(rendered)
    assert any("signature" in r.getMessage().lower() for r in caplog.records)


def test_valid_signature_is_embedded(signature_png_data_url, caplog):
    with caplog.at_level(logging.WARNING, logger="waiver_app.pdf"):
        rendered = generate_waiver_pdf(_input(signature_data_url=signature_png_data_url))
    assert SIGNATURE_FALLBACK_TEXT not in _texts(rendered)
    assert not caplog.records


def test_signature_section_moves_to_next_page_when_box_would_not_fit(signature_png_data_url):
    builder = WaiverPdfBuilder(_input(signature_data_url=signature_png_data_url, ip_address="203.0.113.7"))
    builder.cursor.y = PAGE_HEIGHT - 85 * mm
    builder.signature()
    assert builder.cursor.page == 2
    assert [p.page for p in builder.placements if p.text == "SIGNATURE"] == [2]


def test_signature_box_never_enters_bottom_margin(signature_png_data_url):
    long_paragraph = "<p>" + "I understand the risks of contact training. " * 6 + "</p>"
    short_paragraph = "<p>Short clause.</p>"
    box_bottoms = []
    for count in range(1, 25):
        for extra in range(3):
            content = long_paragraph * count + short_paragraph * extra
            builder = WaiverPdfBuilder(_input(
                rendered_content=content,
                signature_data_url=signature_png_data_url,
                ip_address="203.0.113.7",
            ))
            draw_rect = builder.canvas.rect

            def _record_rect(x, y, width, height, **kwargs):
                box_bottoms.append(y)
                return draw_rect(x, y, width, height, **kwargs)

            builder.canvas.rect = _record_rect
            builder.build()
    assert len(box_bottoms) == 24 * 3
    assert min(box_bottoms) >= PAGE_HEIGHT - LINE_LIMIT - 0.01


def test_long_organization_name_wraps_within_content_width():
    org_name = " ".join(["Iron Fist Dojo and Family Fitness Center"] * 10)
    rendered = generate_waiver_pdf(_input(organization_name=org_name))
    header = [p for p in rendered.placements if p.page == 1][:4]
    assert len({p.y for p in header}) == len(header)
    wrapped = []
    for p in rendered.placements:
        if p.text == "Standard Liability Waiver":
            break
        assert stringWidth(p.text, "Helvetica-Bold", 18) <= CONTENT_WIDTH
        wrapped.append(p.text)
    assert len(wrapped) > 1
    assert " ".join(wrapped) == org_name


def test_membership_details_without_coupon():
    membership = MembershipDetails(
        plan_name="Unlimited Adult",
        price=0,
        frequency="None",
        contract_length="Month to month",
        signup_fee=0,
        is_trial=True,
    )
    texts = _texts(generate_waiver_pdf(_input(membership=membership)))
    assert "MEMBERSHIP DETAILS" in texts
    assert "Plan: Unlimited Adult" in texts
    assert "Type: Free Trial" in texts
    assert "Price: Free" in texts
    assert "Contract Length: Month to month" in texts
    assert not any(t.startswith("Payment Schedule") for t in texts)
    assert not any(t.startswith("Signup Fee") for t in texts)


def test_coupon_price_line_draws_original_then_discounted():
    membership = MembershipDetails(
        plan_name="Unlimited Adult",
        price=100,
        frequency="Monthly",
        signup_fee=49.5,
        coupon_code="SAVE20",
        coupon_type="Percentage",
        coupon_amount="20%",
        coupon_discounted_price=80,
    )
    rendered = generate_waiver_pdf(_input(membership=membership))
    texts = _texts(rendered)
    start = texts.index("Price: ")
    assert texts[start + 1:start + 3] == ["$100.00", "  $80.00"]
    line = [p for p in rendered.placements[start:start + 3]]
    assert len({p.y for p in line}) == 1
    assert "Discount: SAVE20 (20% off)" in texts
    assert "Payment Schedule: Monthly" in texts
    assert "Signup Fee: $49.50" in texts


def test_free_trial_coupon_wording():
    membership = MembershipDetails(
        plan_name="Kids",
        price=60,
        coupon_code="TRIAL",
        coupon_type="Free Trial",
        coupon_amount="7 days",
        coupon_discounted_price=0,
    )
    texts = _texts(generate_waiver_pdf(_input(membership=membership)))
    assert "  Free" in texts
    assert "Discount: TRIAL (7 days)" in texts


def test_pdf_response_is_attachment():
    response = waiver_pdf_response(_input())
    assert response.media_type == "application/pdf"
    assert 'filename="waiver_Lee_Sam_2024-12-25.pdf"' in response.headers["content-disposition"]
    assert response.body.startswith(b"%PDF")
