import base64
import datetime
import uuid
from typing import Any, Dict, List, Optional
from io import BytesIO

import requests
import streamlit as st
from PIL import Image

from config.settings import settings

BACKEND_URL = settings.BACKEND_URL

# generation polls for up to two minutes on the backend
GENERATE_TIMEOUT = settings.POLL_INTERVAL * settings.MAX_POLL_ATTEMPTS + 60


class BackendError(Exception):
    pass


def _check(resp: requests.Response) -> Dict[str, Any]:
    if resp.ok:
        return resp.json()
    try:
        message = resp.json().get("error") or resp.text
    except ValueError:
        message = resp.text
    raise BackendError(message or f"HTTP {resp.status_code}")


def fetch_styles() -> List[Dict[str, Any]]:
    resp = requests.get(f"{BACKEND_URL}/styles", timeout=10)
    return _check(resp)


def call_generate(session_id: str, main_text: str, style_id: Optional[str],
                  context_text: str, reference_url: str,
                  reference_image: Optional[bytes]) -> Dict[str, Any]:
    """POST /generate -> {session_id, prompt, images}"""
    payload = {
        "session_id": session_id,
        "main_text": main_text,
        "style_id": style_id,
        "context_text": context_text,
        "reference_url": reference_url,
    }
    if reference_image:
        payload["reference_image"] = base64.b64encode(reference_image).decode("ascii")

    resp = requests.post(f"{BACKEND_URL}/generate", json=payload, timeout=GENERATE_TIMEOUT)
    return _check(resp)


def call_refine(session_id: str, instruction: str, selected_index: int) -> Dict[str, Any]:
    payload = {
        "session_id": session_id,
        "instruction": instruction,
        "selected_index": selected_index,
    }
    resp = requests.post(f"{BACKEND_URL}/refine", json=payload, timeout=GENERATE_TIMEOUT)
    return _check(resp)


def call_select(session_id: str, index: int) -> Dict[str, Any]:
    resp = requests.post(
        f"{BACKEND_URL}/sessions/{session_id}/select", json={"index": index}, timeout=10
    )
    return _check(resp)


@st.cache_data(show_spinner=False, max_entries=32)
def download_image(image_url: str) -> bytes:
    """Download an image URL -> raw bytes, checked to decode as an image. Cached per URL."""
    resp = requests.get(image_url, timeout=30)
    resp.raise_for_status()
    Image.open(BytesIO(resp.content)).verify()
    return resp.content


# ==========================
# Page
# ==========================
st.set_page_config(
    page_title="YouTube Thumbnail Generator",
    page_icon="🎬",
    layout="wide"
)

st.title("🎬 YouTube Thumbnail Generator")
st.caption("Create eye-catching thumbnails. Generate 3 options, pick one, refine it.")

# ==========================
# State
# ==========================
if "session_id" not in st.session_state:
    st.session_state["session_id"] = uuid.uuid4().hex
if "thumbnails" not in st.session_state:
    st.session_state["thumbnails"] = []
if "selected" not in st.session_state:
    st.session_state["selected"] = None

session_id = st.session_state["session_id"]

try:
    styles = fetch_styles()
except (requests.RequestException, BackendError) as e:
    st.error(f"Backend unavailable: {e}")
    styles = []

left, right = st.columns(2)

# ==========================
# Generator form
# ==========================
with left:
    with st.form("generator"):
        main_text = st.text_input("Main text", placeholder="e.g. I TRIED IT FOR 30 DAYS")
        style_names = ["None"] + [s["name"] for s in styles]
        style_choice = st.radio("Style", style_names, horizontal=True)
        context_text = st.text_area("Context", placeholder="Describe the scene, mood, people...")
        reference_url = st.text_input("Reference video URL (optional)")
        uploaded = st.file_uploader("Reference image (optional)", type=["png", "jpg", "jpeg", "webp"])
        submitted = st.form_submit_button("Generate Thumbnails", use_container_width=True)

    if uploaded is not None:
        st.image(Image.open(uploaded), caption="Reference image", width=240)

    if submitted:
        if not main_text.strip():
            st.warning("Main text is required")
        else:
            style_id = next((s["id"] for s in styles if s["name"] == style_choice), None)
            with st.spinner("Generating thumbnails..."):
                try:
                    result = call_generate(
                        session_id, main_text, style_id, context_text, reference_url,
                        uploaded.getvalue() if uploaded is not None else None,
                    )
                    st.session_state["thumbnails"] = result["images"]
                    st.session_state["selected"] = None
                    st.success("Thumbnails generated! Pick one to refine it.")
                except (requests.RequestException, BackendError) as e:
                    st.error(f"Generation failed: {e}")

# ==========================
# Results + refinement
# ==========================
with right:
    thumbnails = st.session_state["thumbnails"]
    if thumbnails:
        cols = st.columns(len(thumbnails))
        for i, (col, url) in enumerate(zip(cols, thumbnails)):
            with col:
                st.image(url, caption=f"Option {i + 1}", use_container_width=True)
                if st.button("Select", key=f"select_{i}", use_container_width=True):
                    try:
                        call_select(session_id, i)
                        st.session_state["selected"] = i
                    except (requests.RequestException, BackendError) as e:
                        st.error(str(e))

    selected = st.session_state["selected"]
    if selected is not None and thumbnails:
        st.markdown(f"### Refine Option {selected + 1}")

        try:
            img_bytes = download_image(thumbnails[selected])
        except (requests.RequestException, OSError) as e:
            st.error(f"Could not load image: {e}")
            img_bytes = None

        if img_bytes:
            ts = datetime.datetime.now().strftime("%Y%m%d_%H%M%S")
            st.download_button(
                "⬇️ Download",
                data=img_bytes,
                file_name=f"thumbnail_{ts}.png",
                mime="image/png"
            )

        with st.form("refine"):
            instruction = st.text_area(
                "How should it change?",
                placeholder="make the text bigger, add more contrast, change background to sunset",
            )
            refine_clicked = st.form_submit_button("Refine Thumbnail", use_container_width=True)

        if refine_clicked and instruction.strip():
            with st.spinner("Refining..."):
                try:
                    result = call_refine(session_id, instruction, selected)
                    st.session_state["thumbnails"] = result["images"]
                    st.session_state["selected"] = None
                    st.success("New thumbnail options have been generated.")
                    st.rerun()
                except (requests.RequestException, BackendError) as e:
                    st.error(f"Refinement failed: {e}")
