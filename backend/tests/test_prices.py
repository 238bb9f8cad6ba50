from decimal import Decimal
from unittest.mock import Mock

import pytest
import requests

from hodl import db
from hodl.errors import AllSourcesUnavailable, PriceSourceError
from hodl.models import PriceFeed
from hodl.services.prices import store
from hodl.services.prices.fetcher import FetchResult, PriceFetcher
from hodl.services.prices.sources import SOURCES, sources_from_names


def _response(payload=None, status=200, bad_json=False):
    response = Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    if bad_json:
        response.json.side_effect = ValueError('Expecting value')
    else:
        response.json.return_value = payload
    return response


def _session(*responses):
    session = Mock(spec=requests.Session)
    session.get.side_effect = list(responses)
    return session


# ---- store ----

@pytest.mark.parametrize('raw,expected', [
    (68010.4, '68010.40'),
    (68010.400000000001, '68010.40'),
    ('94730.505', '94730.51'),
    (Decimal('94230'), '94230.00'),
    (1, '1.00'),
])
def test_normalize_price(flask_app, raw, expected):
    assert store.normalize_price(raw) == Decimal(expected)
    assert str(store.normalize_price(raw)) == expected


@pytest.mark.parametrize('raw', ['abc', None, float('nan'), float('inf'), True])
def test_normalize_price_rejects_garbage(flask_app, raw):
    with pytest.raises(ValueError):
        store.normalize_price(raw)


def test_normalize_price_uses_configured_decimals(flask_app):
    assert store.normalize_price('0.123456', decimals=4) == Decimal('0.1235')


def test_empty_store_is_unavailable(flask_app):
    assert store.get_price() is None


def test_zero_sentinel_row_is_unavailable(flask_app):
    db.session.add(PriceFeed(k='btc', usd=0, ts=None))
    db.session.commit()
    assert store.get_price() is None


def test_set_then_get_is_consistent(flask_app):
    written = store.set_price(68010.4, source='kraken')
    read = store.get_price()
    assert read.usd == Decimal('68010.40') == written.usd
    assert read.source == 'kraken'
    assert read.ts is not None
    assert read.to_dict()['usd'] == 68010.4


def test_set_overwrites_the_single_slot(flask_app):
    db.session.add(PriceFeed(k='btc', usd=0, ts=None))
    db.session.commit()
    store.set_price('100.00', source='binance')
    store.set_price('101.25', source='coingecko')
    assert PriceFeed.query.count() == 1
    assert store.get_price().usd == Decimal('101.25')
    assert store.get_price().source == 'coingecko'


@pytest.mark.parametrize('bad', [0, -5, '0.001'])
def test_set_refuses_non_positive_and_keeps_last_value(flask_app, bad):
    store.set_price('100.00')
    with pytest.raises(ValueError):
        store.set_price(bad)
    assert store.get_price().usd == Decimal('100.00')


# ---- sources ----

def test_kraken_payload():
    session = _session(_response({'error': [], 'result': {'XXBTZUSD': {'c': ['94230.10000', '0.01']}}}))
    assert SOURCES['kraken'].fetch(session, 2.5) == Decimal('94230.10000')
    _, kwargs = session.get.call_args
    assert kwargs['timeout'] == 2.5
    assert kwargs['params'] == {'pair': 'XBTUSD'}
    assert kwargs['headers']['User-Agent'] == 'hodl-or-fold/1.0'


def test_binance_and_coingecko_payloads():
    assert SOURCES['binance'].fetch(_session(_response({'price': '94231.55'})), 1) == Decimal('94231.55')
    assert SOURCES['coingecko'].fetch(_session(_response({'bitcoin': {'usd': 94232.5}})), 1) == Decimal('94232.5')


@pytest.mark.parametrize('response', [
    _response({'price': '0'}),
    _response({'price': '-3'}),
    _response({'price': 'NaN'}),
    _response({'price': None}),
    _response({'nothing': 'here'}),
    _response({'price': '1'}, status=451),
    _response(bad_json=True),
])
def test_binance_failures_raise_source_error(response):
    with pytest.raises(PriceSourceError) as excinfo:
        SOURCES['binance'].fetch(_session(response), 1)
    assert excinfo.value.source == 'binance'


def test_kraken_error_field_is_a_failure():
    with pytest.raises(PriceSourceError):
        SOURCES['kraken'].fetch(_session(_response({'error': ['EService:Unavailable'], 'result': {}})), 1)


def test_network_errors_raise_source_error():
    session = Mock(spec=requests.Session)
    session.get.side_effect = requests.exceptions.Timeout('read timed out')
    with pytest.raises(PriceSourceError):
        SOURCES['coingecko'].fetch(session, 1)


def test_sources_from_names_keeps_order():
    assert [s.name for s in sources_from_names(['coingecko', 'Kraken'])] == ['coingecko', 'kraken']
    with pytest.raises(ValueError):
        sources_from_names(['bitstamp'])
    with pytest.raises(ValueError):
        sources_from_names([])


# ---- fetcher ----

def _source(name, result=None, error=None):
    source = Mock()
    source.name = name
    if error is not None:
        source.fetch.side_effect = error
    else:
        source.fetch.return_value = result
    return source


def test_first_successful_source_wins(flask_app):
    kraken = _source('kraken', error=PriceSourceError('kraken', 'HTTP 503'))
    binance = _source('binance', result=Decimal('94000.12'))
    coingecko = _source('coingecko', result=Decimal('1'))
    fetcher = PriceFetcher([kraken, binance, coingecko], timeout=3, session=Mock())

    assert fetcher.fetch_once() == FetchResult(price=Decimal('94000.12'), source='binance')
    coingecko.fetch.assert_not_called()
    assert binance.fetch.call_args[0][1] == 3


def test_all_sources_failing_raises(flask_app):
    fetcher = PriceFetcher([
        _source('kraken', error=PriceSourceError('kraken', 'down')),
        _source('binance', error=PriceSourceError('binance', 'down')),
    ], session=Mock())
    with pytest.raises(AllSourcesUnavailable) as excinfo:
        fetcher.fetch_once()
    assert len(excinfo.value.failures) == 2


def test_cycle_survives_failed_iterations_and_keeps_last_good_price(flask_app):
    source = _source('kraken')
    source.fetch.side_effect = [
        Decimal('100.001'),
        PriceSourceError('kraken', 'timeout'),
        PriceSourceError('kraken', 'timeout'),
    ]
    sleeps = []
    fetcher = PriceFetcher([source], session=Mock())

    summary = fetcher.run_cycle(3, 1.5, sleep=sleeps.append)

    assert (summary.iterations, summary.ok, summary.failed) == (3, 1, 2)
    assert sleeps == [1.5, 1.5]
    assert store.get_price().usd == Decimal('100.00')
    assert store.get_price().source == 'kraken'


def test_cycle_stores_every_success(flask_app):
    source = _source('binance')
    source.fetch.side_effect = [Decimal('1.00'), Decimal('2.00')]
    summary = PriceFetcher([source], session=Mock()).run_cycle(2, 0, sleep=lambda s: None)
    assert summary.ok == 2
    assert summary.last_price == Decimal('2.00')
    assert store.get_price().usd == Decimal('2.00')


def test_from_config_reads_sources_and_timeout(flask_app):
    fetcher = PriceFetcher.from_config(flask_app.config, session=Mock())
    assert [s.name for s in fetcher.sources] == ['kraken', 'binance', 'coingecko']
    assert fetcher.timeout == 1


def test_fetch_prices_cli_runs_one_cycle(flask_app, monkeypatch):
    results = iter([Decimal('50000.00'), Decimal('50001.00')])
    monkeypatch.setattr(
        PriceFetcher, 'fetch_once',
        lambda self: FetchResult(price=next(results), source='kraken'),
    )
    runner = flask_app.test_cli_runner()
    outcome = runner.invoke(args=['fetch-prices', '--iterations', '2', '--interval', '0'])
    assert outcome.exit_code == 0, outcome.output
    assert 'fetched 2/2' in outcome.output
    assert store.get_price().usd == Decimal('50001.00')


def test_non_object_payload_falls_through_to_next_source(flask_app):
    session = _session(_response(['garbage']), _response({'price': '94230.00'}))
    fetcher = PriceFetcher([SOURCES['kraken'], SOURCES['binance']], session=session)

    assert fetcher.fetch_once() == FetchResult(price=Decimal('94230.00'), source='binance')


@pytest.mark.parametrize('payload', ['garbage', 42, None])
def test_non_object_payload_is_a_source_error(payload):
    with pytest.raises(PriceSourceError):
        SOURCES['kraken'].fetch(_session(_response(payload)), 1)


def test_cycle_survives_price_that_rounds_to_zero(flask_app):
    session = _session(_response({'price': '0.004'}), _response({'price': '94230.00'}))
    fetcher = PriceFetcher([SOURCES['binance']], session=session)

    summary = fetcher.run_cycle(2, 0, sleep=lambda s: None)

    assert (summary.iterations, summary.ok, summary.failed) == (2, 1, 1)
    assert store.get_price().usd == Decimal('94230.00')
    assert store.get_price().source == 'binance'


class _StopWorker(BaseException):
    pass


def test_background_fetcher_survives_a_crashed_cycle(flask_app, monkeypatch):
    from hodl import socketio
    from hodl.services.prices import fetcher as fetcher_module

    calls = []

    def fake_cycle(app, fetcher, sleep):
        calls.append(fetcher)
        if len(calls) == 1:
            raise RuntimeError('boom')
        raise _StopWorker()

    sleeps = []
    monkeypatch.setattr(fetcher_module, 'run_fetch_cycle', fake_cycle)
    monkeypatch.setattr(socketio, 'sleep', sleeps.append)
    monkeypatch.setattr(socketio, 'start_background_task', lambda target: target())

    with pytest.raises(_StopWorker):
        fetcher_module.start_price_fetcher(flask_app)

    assert len(calls) == 2
    assert sleeps == [0.0]
