from aiogram.types import InlineKeyboardMarkup, KeyboardButton, ReplyKeyboardMarkup
from aiogram.utils.keyboard import InlineKeyboardBuilder, ReplyKeyboardBuilder

from tutorbot.core.states import METHOD_LABELS, PAYMENT_METHODS, STREAM_LABELS, STREAMS

BTN_REGISTER = "📝 Register"
BTN_PAY = "💰 Pay Fee"
BTN_INVITE = "🎁 Invite & Earn"
BTN_LEADERBOARD = "🏆 Leaderboard"
BTN_REFERRALS = "👥 My Referrals"
BTN_PROFILE = "👤 My Profile"
BTN_HELP = "❓ Help"
BTN_TRIAL = "📚 Free Trial"
BTN_CANCEL = "❌ Cancel"
BTN_SHARE_CONTACT = "📱 Share Phone Number"


def kb_main(
    *,
    is_verified: bool,
    registration_open: bool = True,
    referral_open: bool = True,
    trial_open: bool = True,
) -> ReplyKeyboardMarkup:
    b = ReplyKeyboardBuilder()
    sizes = []
    if not is_verified:
        row = [BTN_PAY]
        if registration_open:
            row.insert(0, BTN_REGISTER)
        for text in row:
            b.button(text=text)
        sizes.append(len(row))
    elif referral_open:
        b.button(text=BTN_INVITE)
        b.button(text=BTN_LEADERBOARD)
        b.button(text=BTN_REFERRALS)
        sizes += [2, 1]
    if trial_open:
        b.button(text=BTN_TRIAL)
        sizes.append(1)
    b.button(text=BTN_PROFILE)
    b.button(text=BTN_HELP)
    sizes.append(2)
    b.adjust(*sizes)
    return b.as_markup(resize_keyboard=True)


def kb_cancel() -> ReplyKeyboardMarkup:
    b = ReplyKeyboardBuilder()
    b.button(text=BTN_CANCEL)
    return b.as_markup(resize_keyboard=True)


def kb_share_contact() -> ReplyKeyboardMarkup:
    b = ReplyKeyboardBuilder()
    b.add(KeyboardButton(text=BTN_SHARE_CONTACT, request_contact=True))
    b.button(text=BTN_CANCEL)
    b.adjust(1)
    return b.as_markup(resize_keyboard=True, one_time_keyboard=True)


def kb_streams() -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    for stream in STREAMS:
        b.button(text=f"🎓 {STREAM_LABELS[stream]}", callback_data=f"reg:stream:{stream}")
    b.button(text=BTN_CANCEL, callback_data="reg:cancel")
    b.adjust(1)
    return b.as_markup()


def kb_payment_methods(prefix: str = "reg:method") -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    for method in PAYMENT_METHODS:
        b.button(text=f"💳 {METHOD_LABELS[method]}", callback_data=f"{prefix}:{method}")
    b.button(text=BTN_CANCEL, callback_data="reg:cancel" if prefix == "reg:method" else "payout:cancel")
    b.adjust(1)
    return b.as_markup()


def kb_profile(*, can_withdraw: bool) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    if can_withdraw:
        b.button(text="💸 Withdraw", callback_data="wd:request")
    b.button(text="✏️ Change Payment Info", callback_data="payout:edit")
    b.adjust(1)
    return b.as_markup()


def kb_payment_review(payment_id: int, user_id: int) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="✅ Approve", callback_data=f"pay:approve:{payment_id}")
    b.button(text="❌ Reject", callback_data=f"pay:reject:{payment_id}")
    b.button(text="👤 Student details", callback_data=f"admin:user:{user_id}")
    b.adjust(2, 1)
    return b.as_markup()


def kb_withdrawal_review(withdrawal_id: int, user_id: int) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="✅ Mark paid", callback_data=f"wd:complete:{withdrawal_id}")
    b.button(text="❌ Reject", callback_data=f"wd:reject:{withdrawal_id}")
    b.button(text="👤 Student details", callback_data=f"admin:user:{user_id}")
    b.adjust(2, 1)
    return b.as_markup()


def kb_admin_menu() -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="📊 Stats", callback_data="admin:stats")
    b.button(text="🧾 Pending payments", callback_data="admin:pending")
    b.button(text="💸 Pending withdrawals", callback_data="admin:withdrawals")
    b.button(text="📢 Broadcast", callback_data="admin:broadcast")
    b.button(text="📚 Trial materials", callback_data="admin:trials")
    b.button(text="⚙️ Settings", callback_data="admin:settings")
    b.adjust(1)
    return b.as_markup()


def kb_admin_user(tg_id: int, *, blocked: bool) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    if blocked:
        b.button(text="✅ Unblock", callback_data=f"admin:unblock:{tg_id}")
    else:
        b.button(text="⛔ Block", callback_data=f"admin:block:{tg_id}")
    b.button(text="🗑 Delete", callback_data=f"admin:delete:{tg_id}")
    b.adjust(2)
    return b.as_markup()


def kb_confirm_delete(tg_id: int) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="🗑 Yes, delete", callback_data=f"admin:delete:confirm:{tg_id}")
    b.button(text="⬅️ Back", callback_data=f"admin:user:{tg_id}")
    b.adjust(1)
    return b.as_markup()


def kb_broadcast_audience() -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    b.button(text="👥 Everyone", callback_data="bc:aud:all")
    b.button(text="✅ Verified", callback_data="bc:aud:verified")
    b.button(text="⏳ Unverified", callback_data="bc:aud:unverified")
    b.button(text="🛠 Admins", callback_data="bc:aud:admins")
    b.button(text="📨 One user", callback_data="bc:aud:user")
    b.button(text=BTN_CANCEL, callback_data="bc:cancel")
    b.adjust(2, 2, 1, 1)
    return b.as_markup()


def kb_trial_materials(materials) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    for m in materials:
        b.button(text=f"[{m.kind.upper()}] {m.title}", callback_data=f"trial:view:{m.id}")
    b.adjust(1)
    return b.as_markup()


def kb_admin_trials(materials) -> InlineKeyboardMarkup:
    b = InlineKeyboardBuilder()
    for m in materials:
        b.button(text=f"🗑 {m.title}", callback_data=f"trial:del:{m.id}")
    b.adjust(1)
    return b.as_markup()


MENU_BUTTONS = frozenset(
    {
        BTN_REGISTER,
        BTN_PAY,
        BTN_INVITE,
        BTN_LEADERBOARD,
        BTN_REFERRALS,
        BTN_PROFILE,
        BTN_HELP,
        BTN_TRIAL,
        BTN_CANCEL,
    }
)


def is_free_text(text: str | None) -> bool:
    """Text typed by the user, not a command or a menu button."""
    text = (text or "").strip()
    return bool(text) and not text.startswith("/") and text not in MENU_BUTTONS
