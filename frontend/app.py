import asyncio
import datetime
import os
from io import BytesIO

import requests
import streamlit as st
from PIL import Image

from backend.session import GenerationSession
from config.settings import configure_logging, settings

BACKEND_URL = os.getenv("BACKEND_URL") or settings.PREDICTIONS_BASE_URL

configure_logging()


def download_image(image_url: str):
    """Download ảnh từ URL và convert sang PIL Image"""
    try:
        resp = requests.get(image_url, timeout=30)
        resp.raise_for_status()
        img = Image.open(BytesIO(resp.content)).convert("RGB")
        return img, resp.content
    except (requests.RequestException, OSError) as e:
        st.error(f"Không thể tải ảnh: {e}")
        return None, None


# ==========================
# Cấu hình
# ==========================
st.set_page_config(
    page_title="Image Generator",
    page_icon="🎨",
    layout="centered"
)

st.title("🎨 Image Generator")

# ==========================
# State
# ==========================
if "session" not in st.session_state:
    st.session_state["session"] = GenerationSession(
        client_options={"base_url": BACKEND_URL, "timeout": settings.REQUEST_TIMEOUT},
    )

session: GenerationSession = st.session_state["session"]

# ==========================
# Form
# ==========================
with st.form("generate_form"):
    api_key = st.text_input(
        "API Key",
        value=session.api_key,
        type="password",
        placeholder="Enter API Key",
    )
    image_style = st.text_input(
        "Image Style",
        value=session.style,
        placeholder="Enter image style",
    )
    prompt = st.text_input(
        "Prompt",
        value=session.prompt,
        placeholder="Enter your image prompt",
    )
    submitted = st.form_submit_button(
        "Generating..." if session.loading else "Generate Image",
        disabled=session.loading,
        use_container_width=True,
    )

if submitted:
    session.api_key = api_key
    session.style = image_style
    session.prompt = prompt
    with st.spinner("🎨 Generating..."):
        asyncio.run(session.submit())

# ==========================
# Kết quả
# ==========================
if session.error:
    st.error(session.error)

if session.image:
    st.subheader("Generated Image:")
    image, img_bytes = download_image(session.image)
    if image:
        st.image(image, use_container_width=True)
        ts = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
        st.download_button(
            "⬇️ Tải ảnh",
            data=img_bytes,
            file_name=f"design_{ts}.png",
            mime="image/png",
        )
    st.markdown(f"🔗 [Mở ảnh gốc]({session.image})")
