from aiogram import F, Router
from aiogram.filters import Command, CommandStart
from aiogram.fsm.context import FSMContext
from aiogram.fsm.state import State, StatesGroup
from aiogram.types import CallbackQuery, Message

from ..config import DEFAULT_AI_BACKEND
from ..keyboards import BACKEND_LABELS, backend_selection_kb
from ..profiles import get_display_grade, get_learning_grade
from ..services import Services

router = Router()

HELP_TEXT = (
    "指令：\n"
    "/tasks — 今日任務\n"
    "/coins — 本週學習幣\n"
    "/payout — 週日 20:00 後結算本週\n"
    "/exchange [週次] [學習幣] — 兌換學習幣\n"
    "/exchanges — 兌換紀錄與審核\n"
    "/history — 歷史週次\n"
    "/backend — 更換 AI 模型"
)


class Registration(StatesGroup):
    waiting_name = State()
    waiting_age = State()
    waiting_backend = State()


@router.message(CommandStart())
async def cmd_start(message: Message, state: FSMContext, services: Services) -> None:
    await state.clear()
    profile = await services.profiles.get_profile()
    if profile:
        await services.profiles.set_chat_id(message.chat.id)
        await message.answer(f"歡迎回來，{profile.name}！\n\n{HELP_TEXT}")
        return

    await state.set_state(Registration.waiting_name)
    await message.answer("歡迎來到單字冒險島！🏝\n請問冒險者叫什麼名字？")


@router.message(Registration.waiting_name)
async def process_name(message: Message, state: FSMContext) -> None:
    name = (message.text or "").strip()
    if not name:
        await message.answer("請輸入名字：")
        return
    await state.update_data(name=name)
    await state.set_state(Registration.waiting_age)
    await message.answer(f"{name}，你今年幾歲？")


@router.message(Registration.waiting_age)
async def process_age(message: Message, state: FSMContext) -> None:
    text = (message.text or "").strip()
    if not text.isdigit() or not 5 <= int(text) <= 15:
        await message.answer("❌ 請輸入 5 到 15 之間的數字：")
        return
    await state.update_data(age=int(text))
    await state.set_state(Registration.waiting_backend)
    await message.answer(
        "最後，選擇出題的 AI 模型：",
        reply_markup=backend_selection_kb(DEFAULT_AI_BACKEND),
    )


@router.callback_query(Registration.waiting_backend, F.data.startswith("backend:"))
async def process_backend(callback: CallbackQuery, state: FSMContext, services: Services) -> None:
    await callback.answer()
    backend = callback.data.split(":", 1)[1]
    data = await state.get_data()
    await state.clear()

    profile = await services.profiles.create_profile(
        name=data["name"],
        age=data["age"],
        ai_backend=backend,
        chat_id=callback.message.chat.id,
    )
    await callback.message.edit_text(
        f"✅ {profile.name} 的冒險者資料建立完成！\n"
        f"年級：{get_display_grade(profile.age)} 年級，"
        f"學習內容：第 {get_learning_grade(profile.age)} 級\n"
        f"AI 模型：{BACKEND_LABELS[backend]}\n\n{HELP_TEXT}"
    )


@router.message(Command("backend"))
async def cmd_backend(message: Message, services: Services) -> None:
    profile = await services.profiles.get_profile()
    if not profile:
        await message.answer("請先用 /start 建立冒險者資料。")
        return
    await message.answer(
        "選擇出題的 AI 模型：",
        reply_markup=backend_selection_kb(profile.ai_backend),
    )


@router.callback_query(F.data.startswith("backend:"))
async def change_backend(callback: CallbackQuery, services: Services) -> None:
    await callback.answer()
    backend = callback.data.split(":", 1)[1]
    profile = await services.profiles.set_ai_backend(backend)
    await callback.message.edit_text(f"✅ AI 模型已更換為 {BACKEND_LABELS[profile.ai_backend]}")
