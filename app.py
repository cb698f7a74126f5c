import json
import logging
import os
import time

from flask import Blueprint, Flask, current_app, jsonify, request, send_from_directory
from flask_cors import CORS
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import RequestEntityTooLarge
from werkzeug.utils import secure_filename

from config import Config
from data_models import ChequeReviewUpdate
from db_models import STATUS_PROCESSED, Cheque, db
from processing.cheque_pipeline import build_pipeline
from processing.errors import ChequeExtractionError
from processing.webhook import notify_review_needed

logger = logging.getLogger(__name__)

cheques = Blueprint('cheques', __name__)


def _allowed_mimetype(mimetype):
    if not mimetype:
        return False
    if mimetype in current_app.config['ALLOWED_MIME_TYPES']:
        return True
    return any(mimetype.startswith(prefix) for prefix in current_app.config['ALLOWED_MIME_PREFIXES'])


def _remove_upload(path):
    if os.path.exists(path):
        os.remove(path)


@cheques.route('/api/cheques/process', methods=['POST'])
def process_new_cheque():
    """Runs extraction on an uploaded cheque image and stores the result."""
    file = request.files.get('chequeImage')
    if file is None or file.filename == '':
        return jsonify({"message": "No image file uploaded."}), 400
    if not _allowed_mimetype(file.mimetype):
        return jsonify({"message": "Not an image! Please upload an image file."}), 400

    filename = f"{int(time.time() * 1000)}-{secure_filename(file.filename)}"
    path = os.path.join(current_app.config['UPLOAD_FOLDER'], filename)
    file.save(path)

    pipeline = current_app.extensions['cheque_pipeline']
    try:
        extraction = pipeline.extract_cheque(path, mime_type=file.mimetype)
    except ChequeExtractionError as e:
        logger.error("Cheque extraction failed for %s: %s", filename, e)
        _remove_upload(path)
        return jsonify({"message": "Could not extract cheque data from the image.", "error": str(e)}), 422

    cheque = Cheque.from_extraction(extraction, filename)
    try:
        db.session.add(cheque)
        db.session.commit()
    except SQLAlchemyError as e:
        db.session.rollback()
        logger.error("Failed to store cheque %s: %s", filename, e)
        _remove_upload(path)
        return jsonify({"message": "Server error during cheque processing.", "error": str(e)}), 500

    record = cheque.to_dict()
    if cheque.needs_review:
        notify_review_needed(current_app.config.get('N8N_WEBHOOK_URL'), record,
                             timeout=current_app.config.get('WEBHOOK_TIMEOUT', 5))
    logger.info("Stored cheque %s (needs review: %s)", cheque.id, cheque.needs_review)
    return jsonify(record), 201


@cheques.route('/api/cheques/review', methods=['GET'])
def get_review_cheques():
    pending = (Cheque.query
               .filter_by(needs_review=True, status=STATUS_PROCESSED)
               .order_by(Cheque.created_at)
               .all())
    return jsonify([cheque.to_dict() for cheque in pending]), 200


@cheques.route('/api/cheques/review/<int:cheque_id>', methods=['PUT'])
def update_cheque_data(cheque_id):
    """Applies a reviewer's corrections and marks the cheque reviewed."""
    body = request.get_json(silent=True)
    if not isinstance(body, dict):
        return jsonify({"message": "Request body must be a JSON object."}), 400
    try:
        update = ChequeReviewUpdate.model_validate(body)
    except ValidationError as e:
        return jsonify({"message": "Invalid review data.", "details": json.loads(e.json())}), 422

    cheque = db.session.get(Cheque, cheque_id)
    if cheque is None:
        return jsonify({"message": "Cheque not found."}), 404

    cheque.apply_review(update)
    db.session.commit()
    return jsonify(cheque.to_dict()), 200


@cheques.route('/uploads/<path:filename>')
def uploaded_file(filename):
    return send_from_directory(current_app.config['UPLOAD_FOLDER'], filename)


@cheques.route('/health')
def health_check():
    return jsonify({"status": "healthy"})


def create_app(config_class=Config, pipeline=None):
    app = Flask(__name__)
    app.config.from_object(config_class)
    app.config['UPLOAD_FOLDER'] = os.path.abspath(app.config['UPLOAD_FOLDER'])
    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)

    logging.basicConfig(level=app.config['LOG_LEVEL'], format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    CORS(app)  # Enable CORS for the reviewer UI
    db.init_app(app)
    app.extensions['cheque_pipeline'] = pipeline or build_pipeline(app.config)
    app.register_blueprint(cheques)

    @app.errorhandler(RequestEntityTooLarge)
    def file_too_large(e):
        return jsonify({"message": "Uploaded file is too large."}), 413

    @app.cli.command('init-db')
    def init_db():
        """Initialize the database tables."""
        db.create_all()
        print('Database initialized.')

    return app


app = create_app()

if __name__ == '__main__':
    with app.app_context():
        db.create_all()
    app.run(port=int(os.environ.get('PORT', 5001)), debug=True)
