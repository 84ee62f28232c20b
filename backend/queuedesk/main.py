import os

from queuedesk import create_app, socketio

app = create_app()

if __name__ == '__main__':
    port = int(os.environ.get('APP_PORT', 5000))
    socketio.run(app, debug=False, host='0.0.0.0', port=port, allow_unsafe_werkzeug=True)
