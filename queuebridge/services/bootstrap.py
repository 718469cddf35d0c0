"""Application bootstrap/run helpers."""


def run_server(app, cfg_get_str, cfg_get_int, log_queue_system, log_queue_exception, boot_steps):
    """Run startup steps, then start Flask server."""
    host = cfg_get_str("WEB_HOST", "127.0.0.1")
    port = cfg_get_int("WEB_PORT", 8090, minimum=1, maximum=65535)
    log_queue_system("boot-start", command=f"host={host} port={port}")

    for step_name, step_func in boot_steps:
        try:
            step_func()
        except Exception as exc:
            log_queue_exception(f"boot_step/{step_name}", exc)
            log_queue_system("boot-failed", command=step_name, rejection_message=str(exc)[:500] or "startup step failed")
            raise

    log_queue_system("boot-ready", command=f"host={host} port={port}")
    try:
        app.run(host=host, port=port, threaded=True)
    except Exception as exc:
        log_queue_exception("boot_step/app.run", exc)
        log_queue_system("boot-failed", command="app.run", rejection_message=str(exc)[:500] or "web server startup failed")
        raise
