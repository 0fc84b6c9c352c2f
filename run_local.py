import argparse
import logging
import cv2
import numpy as np
from core.config import load_config, PipelineSettings
from core.errors import FaceWatchError
from core.pipeline import PipelineState, build_pipeline
from core.plugin_manager import PluginManager
from core.rendering import FrameRenderer

logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("FaceWatchLocal")

WINDOW_NAME = "FaceWatch"


def main():
    parser = argparse.ArgumentParser(description="Run face-matching surveillance on the local camera.")
    parser.add_argument("--config", default=None, help="Path to config.yaml")
    args = parser.parse_args()

    print("Starting FaceWatch...")

    # 1. Load Config
    config = load_config(args.config)
    renderer = FrameRenderer(PipelineSettings.from_config(config).jpeg_quality)

    def on_alert(identity_id, display_name):
        print(f"Matched with criminal: {display_name} ({identity_id})")

    # 2. Load Components and start
    try:
        pipeline = build_pipeline(config, render_callback=renderer, alert_callback=on_alert)
        pipeline.start()
    except FaceWatchError as e:
        print(f"Initialization Error: {e}")
        PluginManager().shutdown()
        return 1

    print("System Ready. Press 'q' to quit.")

    # 3. Display Loop (GUI calls stay on the main thread)
    try:
        while pipeline.state is PipelineState.RUNNING:
            jpeg = renderer.get_frame()
            if jpeg is not None:
                frame = cv2.imdecode(np.frombuffer(jpeg, dtype=np.uint8), cv2.IMREAD_COLOR)
                cv2.imshow(WINDOW_NAME, frame)

            if cv2.waitKey(30) & 0xFF == ord('q'):
                break
    finally:
        # 4. Cleanup
        pipeline.stop()
        PluginManager().shutdown()
        cv2.destroyAllWindows()

    logger.info(f"Session metrics: {pipeline.get_metrics()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
