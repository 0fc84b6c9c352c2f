from flask import Flask, jsonify, Response
import logging
import threading
import time
from collections import deque
from datetime import datetime

from core.config import load_config, PipelineSettings
from core.errors import CameraPermissionError, DeviceUnavailableError, FetchError, InvalidStateError, ConfigError
from core.pipeline import PipelineState, SurveillancePipeline, build_pipeline
from core.rendering import FrameRenderer, placeholder_frame

# Configure logging
logging.basicConfig(level=logging.INFO, format="%(asctime)s | %(levelname)s | %(message)s")
logger = logging.getLogger("FaceWatch")


class DetectionLog:
    """Live detection log for the UI, newest first."""

    def __init__(self, max_items=50):
        self._entries = deque(maxlen=max_items)
        self._counter = 0
        self._lock = threading.Lock()

    def add(self, log_type, message, icon="info"):
        with self._lock:
            self._counter += 1
            entry = {
                'id': self._counter,
                'time': datetime.now().strftime('%H:%M:%S'),
                'type': log_type,
                'message': message,
                'icon': icon
            }
            self._entries.appendleft(entry)
        return entry

    def entries(self):
        with self._lock:
            return list(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()


def _error(status_code, message):
    return jsonify({'status': 'error', 'message': message}), status_code


def create_app(config_path=None, pipeline: SurveillancePipeline = None) -> Flask:
    """
    Build the web service. Without an explicit pipeline one is wired from
    the YAML config (model loads now, the camera opens on start).
    """
    app = Flask(__name__)

    if pipeline is None:
        config = load_config(config_path)
        settings = PipelineSettings.from_config(config)
        pipeline = build_pipeline(config)
    else:
        settings = pipeline.settings

    detection_log = DetectionLog(settings.detection_log_size)
    renderer = FrameRenderer(settings.jpeg_quality)

    def on_alert(identity_id, display_name):
        detection_log.add('match', f"⚠️ MATCH: {display_name} ({identity_id})", 'user-shield')

    pipeline.render_callback = renderer
    pipeline.alert_callback = on_alert
    app.extensions['facewatch'] = {
        'pipeline': pipeline,
        'renderer': renderer,
        'detection_log': detection_log,
    }

    @app.errorhandler(FetchError)
    def handle_fetch_error(e):
        detection_log.add('system', f"Roster unavailable: {e}", 'exclamation-triangle')
        return _error(502, str(e))

    @app.errorhandler(CameraPermissionError)
    def handle_permission_error(e):
        detection_log.add('system', f"Camera access denied: {e}", 'exclamation-triangle')
        return _error(403, str(e))

    @app.errorhandler(DeviceUnavailableError)
    def handle_device_error(e):
        detection_log.add('system', f"Camera unavailable: {e}", 'exclamation-triangle')
        return _error(503, str(e))

    @app.errorhandler(InvalidStateError)
    def handle_state_error(e):
        return _error(409, str(e))

    @app.route('/api/surveillance/start', methods=['POST'])
    def start_surveillance():
        pipeline.start()
        detection_log.add('system', 'Camera initialized successfully', 'check-circle')
        return jsonify({'status': 'success', **pipeline.status()})

    @app.route('/api/surveillance/restart', methods=['POST'])
    def restart_surveillance():
        pipeline.restart()
        detection_log.add('system', 'Surveillance restarted', 'sync')
        return jsonify({'status': 'success', **pipeline.status()})

    @app.route('/api/surveillance/stop', methods=['POST'])
    def stop_surveillance():
        pipeline.stop()
        renderer.clear()
        detection_log.add('system', 'Surveillance stopped', 'stop-circle')
        return jsonify({'status': 'success', **pipeline.status()})

    @app.route('/api/surveillance/status')
    def surveillance_status():
        return jsonify(pipeline.status())

    @app.route('/api/roster/refresh', methods=['POST'])
    def refresh_roster():
        changed = pipeline.refresh_roster()
        if changed:
            detection_log.add('system', 'Targets reloaded', 'sync')
        return jsonify({'status': 'success', 'changed': changed, **pipeline.status()})

    @app.route('/api/detection_log')
    def get_detection_log():
        return jsonify(detection_log.entries())

    @app.route('/api/detection_log/clear', methods=['POST'])
    def clear_detection_log():
        detection_log.clear()
        return jsonify({'status': 'cleared'})

    def gen():
        placeholder = placeholder_frame()
        while pipeline.state is PipelineState.RUNNING:
            frame = renderer.get_frame() or placeholder
            yield (b'--frame\r\n'
                   b'Content-Type: image/jpeg\r\n\r\n' + frame + b'\r\n\r\n')
            time.sleep(max(settings.frame_interval, 0.03))

    @app.route('/video_feed')
    def video_feed():
        if pipeline.state is not PipelineState.RUNNING:
            return "Surveillance not started", 404
        return Response(gen(), mimetype='multipart/x-mixed-replace; boundary=frame')

    return app


def main():
    try:
        app = create_app()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        raise SystemExit(1)
    # Run on 0.0.0.0 to allow access from other devices on the network
    app.run(host='0.0.0.0', port=5000, threaded=True)


if __name__ == '__main__':
    main()
