from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException
from dotenv import load_dotenv

# Load environment variables before the settings are read
load_dotenv()

from config import Config
from database import init_supabase
from exceptions import ClubStatsError
from logger import setup_logger

logger = setup_logger(__name__)

def register_error_handlers(app):
    @app.errorhandler(ClubStatsError)
    def handle_club_stats_error(error):
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__}: {error}")
        else:
            logger.info(f"{type(error).__name__}: {error}")
        return jsonify({'error': error.user_message}), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'error': error.description}), error.code

    @app.errorhandler(404)
    def handle_not_found(error):
        return jsonify({'error': 'Not found'}), 404

    @app.errorhandler(405)
    def handle_method_not_allowed(error):
        return jsonify({'error': 'Method not allowed'}), 405

    @app.errorhandler(Exception)
    def handle_unexpected_error(error):
        logger.exception(f"Unhandled error: {error}")
        return jsonify({'error': 'Internal server error'}), 500

def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # Initialize Supabase
    init_supabase(app.config.get('SUPABASE_URL'), app.config.get('SUPABASE_SERVICE_ROLE_KEY'))

    # Register blueprints
    from routes.stats import stats_bp
    from routes.tournament import tournament_bp
    from routes.match import match_bp
    from routes.player import player_bp

    app.register_blueprint(stats_bp, url_prefix='/api')
    app.register_blueprint(tournament_bp, url_prefix='/api/tournaments')
    app.register_blueprint(match_bp, url_prefix='/api/matches')
    app.register_blueprint(player_bp, url_prefix='/api/players')

    register_error_handlers(app)

    @app.route('/api/health')
    def health():
        return jsonify({'status': 'ok', 'name': app.config['APP_NAME'], 'version': app.config['APP_VERSION']})

    return app

if __name__ == '__main__':
    app = create_app()
    logger.info(f"Starting {app.config['APP_NAME']} at http://localhost:5000")
    app.run(debug=app.config['DEBUG'], host='0.0.0.0', port=5000)
