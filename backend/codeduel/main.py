from flask import Blueprint, request, jsonify
from flask_login import login_user, logout_user, login_required, current_user
from codeduel.auth import sync_user, token_from_request, verify_token

main = Blueprint('main', __name__)

@main.route('/')
def index():
    return jsonify({'message': 'Welcome to the codeduel server!'})

@main.route('/sync-user', methods=['POST'])
def sync_identity():
    """Verify the provider token and mirror the user into the local database."""
    claims = verify_token(token_from_request(request))
    user = sync_user(claims)
    login_user(user)
    return jsonify({"success": True, "user": user.to_dict()})

@main.route('/me')
@login_required
def me():
    return jsonify({"success": True, "user": current_user.to_dict()})

@main.route('/logout', methods=['POST'])
@login_required
def logout():
    logout_user()
    return jsonify({"success": True})
