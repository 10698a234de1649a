# backend/prompt_builder.py

# Gửi nguyên văn trước mỗi prompt; giữ nguyên câu chữ (kể cả lỗi chính tả)
PROMPT_PREAMBLE = (
    "You will generate a print on demand design in the following style and based on "
    "the following prompt. It will be printed on shirts, hoodies, etc. Do not make it "
    "in the shape of the shirt and do not make a mockup. Just make a square image that "
    "will be primted onto the shirt."
)

STYLE_SEPARATOR = ": "


def build_full_prompt(user_prompt: str, style: str) -> str:
    """
    Ghép preamble + style + prompt của user thành full prompt gửi lên service.
    Không escape, không cắt độ dài: service tự từ chối input không hợp lệ.
    """
    return f"{PROMPT_PREAMBLE} {style}{STYLE_SEPARATOR}{user_prompt}"
