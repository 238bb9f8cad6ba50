from hodl import create_app, socketio

app = create_app()

if __name__ == '__main__':
    # Background loops only belong to the long-running server process
    if app.config.get('PRICE_FETCHER_AUTOSTART'):
        from hodl.services.prices.fetcher import start_price_fetcher
        start_price_fetcher(app)
    if app.config.get('PRICE_BROADCAST_AUTOSTART'):
        from hodl.services.prices.broadcaster import start_price_broadcaster
        start_price_broadcaster(app)
    # Use SocketIO server to enable websockets in dev
    socketio.run(app, debug=True)
