from codeduel import socketio


def start_join_code_sweeper(app, broker, interval_sec=None, stop=None):
    """Evict expired join codes on a fixed interval, independent of traffic.

    ``stop`` is an optional ``threading.Event`` that ends the loop once set.
    """
    if interval_sec is None:
        interval_sec = float(app.config.get('JOIN_CODE_SWEEP_INTERVAL_SEC', 600))
    if interval_sec <= 0:
        return None

    def _worker():
        while stop is None or not stop.is_set():
            socketio.sleep(interval_sec)
            try:
                broker.sweep()
            except Exception:
                app.logger.exception("[joincode-sweep-failed]")

    app.logger.info(f"[joincode-sweeper] interval={interval_sec}s")
    return socketio.start_background_task(_worker)
