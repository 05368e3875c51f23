import pytest
import requests

from conftest import ORIGIN, Reply
from edupage.errors import HttpStatusError, NetworkError, TooManyRedirects
from edupage.transport import CookieTransport, next_method, with_query


def test_post_303_is_replayed_as_get_without_body(transport, stub):
    stub.add('POST', f'{ORIGIN}/start', Reply(303, headers=[('Location', '/next')]))
    stub.add('GET', f'{ORIGIN}/next', Reply(200, 'done'))

    res = transport.request('POST', '/start', data='a=1', headers={'Content-Type': 'application/x-www-form-urlencoded'})

    assert res.status == 200
    assert res.text == 'done'
    assert res.url == f'{ORIGIN}/next'
    follow = stub.sent[-1]
    assert follow.method == 'GET'
    assert follow.url == f'{ORIGIN}/next'
    assert follow.body is None
    assert 'Content-Type' not in follow.headers


def test_cookies_from_each_redirect_hop_reach_the_final_request(transport, stub, session):
    stub.add('GET', f'{ORIGIN}/a', Reply(302, headers=[('Location', '/b'), ('Set-Cookie', 'first=1; Path=/')]))
    stub.add('GET', f'{ORIGIN}/b', Reply(302, headers=[('Location', '/c'),
                                                        ('Set-Cookie', 'second=2; Domain=.edupage.org; Path=/')]))
    stub.add('GET', f'{ORIGIN}/c', Reply(200, 'ok'))

    transport.request('GET', '/a')

    cookie_header = stub.sent[-1].headers.get('Cookie', '')
    assert 'first=1' in cookie_header
    assert 'second=2' in cookie_header
    assert session.has_cookie('first')
    assert session.has_cookie('second')


def test_302_keeps_get_and_downgrades_post(transport, stub):
    stub.add('POST', f'{ORIGIN}/form', Reply(302, headers=[('Location', 'done')]))
    stub.add('GET', f'{ORIGIN}/done', Reply(200, 'x'))

    transport.request('POST', '/form', data='k=v')

    assert [r.method for r in stub.sent] == ['POST', 'GET']


@pytest.mark.parametrize('status', [301, 307, 308])
def test_method_and_body_preserved(transport, stub, status):
    stub.add('POST', f'{ORIGIN}/old', Reply(status, headers=[('Location', f'{ORIGIN}/new')]))
    stub.add('POST', f'{ORIGIN}/new', Reply(200, 'moved'))

    res = transport.request('POST', '/old', data='k=v')

    assert res.text == 'moved'
    assert stub.sent[-1].method == 'POST'
    assert stub.sent[-1].body == 'k=v'


def test_relative_location_resolves_against_current_path(transport, stub):
    stub.add('GET', f'{ORIGIN}/login/index.php', Reply(302, headers=[('Location', 'step2.php?x=1')]))
    stub.add('GET', f'{ORIGIN}/login/step2.php', Reply(200, 'ok'))

    transport.request('GET', '/login/index.php')

    assert stub.sent[-1].url == f'{ORIGIN}/login/step2.php?x=1'


def test_redirect_without_location_is_returned(transport, stub):
    stub.add('GET', f'{ORIGIN}/odd', Reply(302, 'no location'))

    res = transport.request('GET', '/odd')

    assert res.status == 302
    assert len(stub.sent) == 1


def test_hop_cap(transport, stub):
    stub.add('GET', f'{ORIGIN}/loop', Reply(302, headers=[('Location', '/loop')]))

    with pytest.raises(TooManyRedirects):
        transport.request('GET', '/loop')
    assert len(stub.sent) == 8


def test_transport_failure_becomes_network_error(transport, stub):
    def boom(request):
        raise requests.Timeout('read timed out')

    stub.add('GET', f'{ORIGIN}/slow', boom)

    with pytest.raises(NetworkError):
        transport.request('GET', '/slow')


def test_checked_helpers_raise_on_http_error(transport, stub):
    stub.add('GET', f'{ORIGIN}/missing', Reply(404, 'nope'))

    with pytest.raises(HttpStatusError) as exc:
        transport.get('/missing')
    assert exc.value.status == 404
    assert 'HTTP 404 on GET' in str(exc.value)


def test_post_form_encodes_body_and_query(transport, stub):
    stub.add('POST', f'{ORIGIN}/rpc', Reply(200, '{}'))

    transport.post_form('/rpc?cmd=X', {'a': 'b c', 'n': 1}, params={'eqav': 2})

    sent = stub.sent[-1]
    assert sent.body == 'a=b+c&n=1'
    assert sent.headers['Content-Type'].startswith('application/x-www-form-urlencoded')
    assert sent.url == f'{ORIGIN}/rpc?cmd=X&eqav=2'


def test_custom_hop_cap(session, stub):
    stub.add('GET', f'{ORIGIN}/loop', Reply(301, headers=[('Location', '/loop')]))

    with pytest.raises(TooManyRedirects):
        CookieTransport(session, max_hops=2).request('GET', '/loop')
    assert len(stub.sent) == 2


def test_next_method_table():
    assert next_method(303, 'POST') == 'GET'
    assert next_method(303, 'PUT') == 'GET'
    assert next_method(302, 'POST') == 'GET'
    assert next_method(302, 'GET') == 'GET'
    assert next_method(301, 'POST') == 'POST'
    assert next_method(307, 'POST') == 'POST'
    assert next_method(308, 'PUT') == 'PUT'


def test_with_query_overrides_existing_keys():
    assert with_query('/p?a=1&eqav=1', {'eqav': 3}) == '/p?a=1&eqav=3'
    assert with_query('/p', None) == '/p'
