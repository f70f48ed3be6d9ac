from flask import Blueprint, jsonify

from .auth import issue_access_token

main = Blueprint('main', __name__)


@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the Bulls and Cows game server!'})


@main.route('/api/auth/anonymous', methods=['POST'])
def anonymous_session():
    """Mint a fresh anonymous identity and its bearer token."""
    return jsonify(issue_access_token()), 201
