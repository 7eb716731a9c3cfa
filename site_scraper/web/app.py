"""
Flask web application for the site scraper.

Exposes project management over a JSON API and streams run progress to
browsers with Server-Sent Events.
"""

import json
import queue
from typing import Optional

from flask import Flask, Response, jsonify, request, stream_with_context

from ..projects import ProjectConflictError, ProjectNotFoundError, ProjectRunner, ProjectStore
from ..models import Project
from ..utils.constants import DEFAULT_DATA_DIR, DEFAULT_PORT
from ..utils.log import get_logger


# Seconds between keep-alive comments on an idle event stream
KEEPALIVE_INTERVAL = 15

# JSON request keys accepted for project configuration
CONFIG_KEYS = {Project.FIELD_KEYS[attr]: attr for attr in Project.CONFIG_FIELDS}


def _project_changes(data: dict) -> dict:
    """Translate a camelCase request body into Project attribute changes."""
    changes = {}
    for key, value in data.items():
        if key in CONFIG_KEYS:
            changes[CONFIG_KEYS[key]] = value
    return changes


def create_app(
    store: Optional[ProjectStore] = None,
    runner: Optional[ProjectRunner] = None
) -> Flask:
    """
    Create and configure the Flask application.

    Args:
        store: Project store (loaded from the default data dir if omitted)
        runner: Project runner (created over the store if omitted)
    """
    app = Flask(__name__)
    logger = get_logger("web")

    if store is None:
        store = ProjectStore(DEFAULT_DATA_DIR)
        store.load()
    if runner is None:
        runner = ProjectRunner(store)

    app.config['PROJECT_STORE'] = store
    app.config['PROJECT_RUNNER'] = runner

    @app.errorhandler(ProjectNotFoundError)
    def not_found(e):
        return jsonify({'error': 'Project not found'}), 404

    @app.errorhandler(ProjectConflictError)
    def conflict(e):
        return jsonify({'error': str(e)}), 409

    @app.errorhandler(ValueError)
    def bad_request(e):
        return jsonify({'error': str(e)}), 400

    @app.route('/api/projects', methods=['GET'])
    def list_projects():
        """List all projects."""
        return jsonify([p.to_dict() for p in store.all()])

    @app.route('/api/projects', methods=['POST'])
    def create_project():
        """Create a project from a JSON body."""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'error': 'No JSON data provided'}), 400

        changes = _project_changes(data)
        name = changes.pop('name', None)
        urls = changes.pop('urls', None)
        if not name or not urls:
            return jsonify({'error': 'Name and URLs are required'}), 400

        project = store.create(name, urls, **changes)
        return jsonify(project.to_dict()), 201

    @app.route('/api/projects/<project_id>', methods=['GET'])
    def get_project(project_id):
        return jsonify(store.get(project_id).to_dict())

    @app.route('/api/projects/<project_id>', methods=['PUT'])
    def update_project(project_id):
        """Update a project's configuration."""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return jsonify({'error': 'No JSON data provided'}), 400
        project = store.update(project_id, **_project_changes(data))
        return jsonify(project.to_dict())

    @app.route('/api/projects/<project_id>', methods=['DELETE'])
    def delete_project(project_id):
        store.delete(project_id)
        return jsonify({'success': True})

    @app.route('/api/projects/<project_id>/run', methods=['POST'])
    def run_project(project_id):
        """Start a project run in the background."""
        runner.start(project_id)
        logger.info(f"Started run for project {project_id}")
        return jsonify({'message': 'Project started', 'projectId': project_id}), 202

    @app.route('/api/events')
    def events():
        """Stream progress events as Server-Sent Events."""
        client_queue: "queue.Queue" = queue.Queue()
        runner.add_listener(client_queue.put)

        def stream():
            try:
                yield f"data: {json.dumps({'type': 'connected'})}\n\n"
                while True:
                    try:
                        event = client_queue.get(timeout=KEEPALIVE_INTERVAL)
                    except queue.Empty:
                        yield ": keepalive\n\n"
                        continue
                    payload = dict(event.to_dict(), type='progress')
                    yield f"data: {json.dumps(payload)}\n\n"
            finally:
                runner.remove_listener(client_queue.put)

        return Response(
            stream_with_context(stream()),
            mimetype='text/event-stream',
            headers={'Cache-Control': 'no-cache', 'X-Accel-Buffering': 'no'},
        )

    return app


def run_app(
    host: str = '127.0.0.1',
    port: int = DEFAULT_PORT,
    data_dir: str = DEFAULT_DATA_DIR,
    debug: bool = False
):
    """Run the Flask web application."""
    store = ProjectStore(data_dir)
    store.load()
    app = create_app(store, ProjectRunner(store))
    app.run(host=host, port=port, debug=debug, threaded=True)
