"""
StarryCam camera screen
Start page, camera capture, busy indicator, stylized result and retake
"""

import asyncio
import logging
import os
import sys
from pathlib import Path

import streamlit as st

sys.path.append(str(Path(__file__).parent.parent))

from core.CaptureDevice import CapturedImage
from core.InferencePipeline import InferencePipeline
from core.SessionController import SessionController, SessionState
from utilities.ConfigManager import ConfigManager
from utilities.Logger import Logger

# Setup
logger = Logger.setup_logger(log_file="ui.log", log_level=logging.INFO)

st.set_page_config(page_title="StarryCam", page_icon="🌌", layout="centered")


@st.cache_resource
def load_pipeline():
    config = ConfigManager.load_app_config(os.environ.get("STARRYCAM_CONFIG"))
    Logger.set_level_all(config.level)
    return InferencePipeline.from_config(config)


class StarryCamUI:
    def __init__(self):
        if "screen" not in st.session_state:
            st.session_state.screen = "start"
        if "shot" not in st.session_state:
            st.session_state.shot = 0
        if "controller" not in st.session_state:
            # The browser camera widget supplies photos, no local camera session
            controller = SessionController(load_pipeline(), adapter_factory=None)
            controller.open()
            st.session_state.controller = controller
        self.controller = st.session_state.controller

    def render(self):
        if st.session_state.screen == "start":
            self.render_start()
        else:
            self.render_camera()

    def render_start(self):
        st.title("StarryCam")
        st.write("Take a photo and see it painted in the style of The Starry Night.")
        if st.button("Start"):
            st.session_state.screen = "camera"
            st.rerun()

    def render_camera(self):
        display = self.controller.snapshot()

        if display.state == SessionState.AWAITING_CAPTURE:
            photo = st.camera_input("Take Photo", key=f"camera-{st.session_state.shot}")
            if photo is not None:
                self.stylize(photo.getvalue())
            return

        if display.transformed is not None:
            st.image(display.transformed, use_container_width=True)
        else:
            st.info(display.message or "No Image Available")

        if st.button("Retake Photo"):
            self.controller.retake()
            # Fresh widget key so the previous photo is not submitted again
            st.session_state.shot += 1
            st.rerun()

    def stylize(self, data):
        try:
            captured = CapturedImage.from_bytes(data)
        except Exception as e:
            logger.error(f"Could not read camera photo: {e}")
            st.error("The photo could not be read")
            return
        with st.spinner("Painting your photo..."):
            asyncio.run(self.controller.submit(captured))
        st.rerun()


StarryCamUI().render()
