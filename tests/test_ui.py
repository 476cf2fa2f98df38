from __future__ import annotations

from tutorbot.bot.keyboards import BTN_CANCEL, BTN_INVITE, BTN_PAY, BTN_REGISTER, BTN_TRIAL, is_free_text, kb_main
from tutorbot.bot.ui import h, user_card
from tutorbot.db.models import User


def _texts(markup) -> list[str]:
    return [b.text for row in markup.keyboard for b in row]


def test_free_text_excludes_commands_and_buttons():
    assert is_free_text("Abebe Kebede")
    assert not is_free_text("/start")
    assert not is_free_text(BTN_CANCEL)
    assert not is_free_text(BTN_TRIAL)
    assert not is_free_text("   ")
    assert not is_free_text(None)


def test_main_menu_depends_on_standing():
    unverified = _texts(kb_main(is_verified=False))
    assert BTN_REGISTER in unverified and BTN_PAY in unverified
    assert BTN_INVITE not in unverified

    verified = _texts(kb_main(is_verified=True))
    assert BTN_INVITE in verified and BTN_REGISTER not in verified

    assert BTN_REGISTER not in _texts(kb_main(is_verified=False, registration_open=False))
    assert BTN_INVITE not in _texts(kb_main(is_verified=True, referral_open=False))

    assert BTN_TRIAL in unverified and BTN_TRIAL in verified
    assert BTN_TRIAL not in _texts(kb_main(is_verified=False, trial_open=False))


def test_user_input_is_escaped():
    assert h("<b>x</b>") == "&lt;b&gt;x&lt;/b&gt;"
    assert h(None) == "—"
    user = User(tg_id=5, name="<script>", username="abe", referral_count=0, rewards=0, total_rewards=0, blocked=True)
    card = user_card(user)
    assert "&lt;script&gt;" in card
    assert "<script>" not in card
    assert "Blocked" in card
