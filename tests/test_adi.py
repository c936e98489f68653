import io

import pytest

from adifparse.adi import ADIF_Syntax_Error, ADIF_Unsupported, ADIF_Error
from adifparse.adi import ADI_Tokenizer, ADI_Parse_State, ADI_Parser
from adifparse.adi import adi_parse, adi_parse_string, adi_dump, equal_ci

def tokens (data) :
    tok = ADI_Tokenizer (io.BytesIO (data))
    r   = []
    while True :
        t = tok.next_token ()
        r.append ((t.kind, t.data))
        if t.kind == 'eof' :
            return r
# end def tokens

def values (record) :
    return [(f.canon, f.value) for f in record.fields]
# end def values

class Failing_Source :
    def peek (self, n) :
        raise OSError ('read error')
# end class Failing_Source


def test_tokenizer () :
    assert tokens (b'<call:6>KK6ZBI\r\n') == \
        [ ('lab',   b'<')
        , ('bytes', b'call')
        , ('colon', b':')
        , ('bytes', b'6')
        , ('rab',   b'>')
        , ('bytes', b'KK6ZBI\r\n')
        , ('eof',   b'')
        ]


def test_tokenizer_empty () :
    assert tokens (b'') == [('eof', b'')]


@pytest.mark.parametrize ('data', [b'ab\x01c', b'tab\there', b'\x7f', b'M\xc3\xbcller'])
def test_tokenizer_rejects_bytes (data) :
    with pytest.raises (ADIF_Syntax_Error) as excinfo :
        tokens (data)
    assert 'expected ASCII character' in str (excinfo.value)


def test_equal_ci () :
    assert equal_ci (b'EoR', b'eor')
    assert not equal_ci (b'eors', b'eor')
    assert not equal_ci (b'\xc5or', b'eor')


def test_peek_does_not_consume () :
    state = ADI_Parse_State (io.BytesIO (b'<a>'))
    assert state.peek (0).kind == 'lab'
    assert state.peek (2).kind == 'rab'
    assert state.peek (0).kind == 'lab'
    assert state.peek (1).data == b'a'


def test_eof_is_sticky () :
    state = ADI_Parse_State (io.BytesIO (b'<a>'))
    assert state.peek (10).kind == 'eof'
    assert state.exhausted
    state.consume (3)
    assert state.peek (0).kind == 'eof'
    assert state.peek (5).kind == 'eof'
    assert len (state.tokens) == 1


def test_consume_eof_is_a_contract_violation () :
    state = ADI_Parse_State (io.BytesIO (b'<'))
    state.peek (1)
    with pytest.raises (AssertionError) :
        state.consume (2)


def test_consume_unpeeked_is_a_contract_violation () :
    state = ADI_Parse_State (io.BytesIO (b'<a>'))
    state.peek (0)
    with pytest.raises (AssertionError) :
        state.consume (2)


def test_faulted_state () :
    state = ADI_Parse_State (io.BytesIO (b'\x02'))
    with pytest.raises (ADIF_Syntax_Error) as excinfo :
        state.peek (0)
    assert state.faulted

    def no_read () :
        raise AssertionError ('tokenizer called on faulted state')
    state.tokenizer.next_token = no_read
    with pytest.raises (ADIF_Syntax_Error) as again :
        state.peek (0)
    assert again.value is excinfo.value


def test_io_error_propagates () :
    with pytest.raises (OSError) :
        adi_parse (Failing_Source ())


def test_empty_input () :
    adi = adi_parse_string ('')
    assert adi.header is None
    assert adi.records == []


def test_simple_field () :
    adi = adi_parse_string ('<CALL:6>KK6ZBI and some filler\n<eor>')
    assert adi.header is None
    assert len (adi.records) == 1
    f = adi.records [0].fields [0]
    assert f.name   == 'CALL'
    assert f.canon  == 'call'
    assert f.length == 6
    assert f.value  == b'KK6ZBI'
    assert f.type is None


def test_delimiters_in_value () :
    adi = adi_parse_string ('<f:3><:><eor>')
    assert values (adi.records [0]) == [('f', b'<:>')]


def test_delimiters_in_longer_value () :
    adi = adi_parse_string ('<comment:11>a<b>c:d<e>f<eor>')
    assert values (adi.records [0]) == [('comment', b'a<b>c:d<e>f')]


def test_zero_length_value () :
    adi = adi_parse_string ('<notes:0><call:3>ABC<eor>')
    assert values (adi.records [0]) == [('notes', b''), ('call', b'ABC')]


def test_value_spans_buffer_refills () :
    raw = io.BytesIO (b'<call:10>ABCDEFGHIJ<eor>')
    fd  = io.BufferedReader (raw, buffer_size = 3)
    adi = adi_parse (fd)
    assert values (adi.records [0]) == [('call', b'ABCDEFGHIJ')]


def test_wrapped_source_is_not_closed () :
    raw = io.BytesIO (b'<call:3>ABC<eor>')
    adi_parse (raw)
    assert not raw.closed


@pytest.mark.parametrize ('marker', ['EOH', 'eoh', 'EoH'])
def test_header_marker_case (marker) :
    adi = adi_parse_string ('header<%s><call:3>ABC<eor>' % marker)
    assert adi.header.text == b'header'
    assert values (adi.records [0]) == [('call', b'ABC')]


@pytest.mark.parametrize ('marker', ['EOR', 'eor', 'eOr'])
def test_record_marker_case (marker) :
    adi = adi_parse_string ('<call:3>ABC<%s>\n<call:3>DEF<eor>' % marker)
    assert len (adi.records) == 2
    assert values (adi.records [1]) == [('call', b'DEF')]


def test_header_and_records () :
    adi = adi_parse_string \
        ( 'preamble<foo:3>123<bar:4>4567<eoh>\n'
          '<call:6>KK6ZBI\n<qso_date:8>20181129\n<eor>'
        )
    assert adi.header.text == b'preamble'
    assert [(f.canon, f.value) for f in adi.header.fields] == \
        [('foo', b'123'), ('bar', b'4567')]
    assert len (adi.records) == 1
    assert values (adi.records [0]) == \
        [('call', b'KK6ZBI'), ('qso_date', b'20181129')]


def test_header_stray_delimiters () :
    adi = adi_parse_string ('a:b>c\n<eoh>')
    assert adi.header.text == b'a:b>c\n'
    assert adi.header.fields == []
    assert adi.records == []


def test_header_value_truncated () :
    adi = adi_parse_string ('preamble<foo:3>12345<bar:7>123456789<eoh>')
    assert [(f.canon, f.value) for f in adi.header.fields] == \
        [('foo', b'123'), ('bar', b'1234567')]


def test_header_without_eoh () :
    with pytest.raises (ADIF_Syntax_Error) as excinfo :
        adi_parse_string ('preamble<foo:3>123')
    assert 'reading header' in str (excinfo.value)


def test_record_without_eor () :
    with pytest.raises (ADIF_Syntax_Error) as excinfo :
        adi_parse_string ('<call:3>ABC<eor><call:3>DEF')
    assert excinfo.value.record == 2


def test_trailing_filler () :
    adi = adi_parse_string ('<call:3>ABC<eor>\n\n  trailing junk\n')
    assert len (adi.records) == 1


@pytest.mark.parametrize \
    ( 'data'
    , [ '<call:1025>' + 'x' * 1025 + '<eor>'
      , '<call:99999>x<eor>'
      , '<call:' + '9' * 5000 + '>x<eor>'
      ]
    )
def test_length_too_large (data) :
    with pytest.raises (ADIF_Syntax_Error) as excinfo :
        adi_parse_string (data)
    assert excinfo.value.field == 'call'


def test_max_fieldlen_configurable () :
    adi = adi_parse_string ('<call:6>KK6ZBI<eor>', max_fieldlen = 6)
    assert values (adi.records [0]) == [('call', b'KK6ZBI')]
    with pytest.raises (ADIF_Syntax_Error) :
        adi_parse_string ('<call:6>KK6ZBI<eor>', max_fieldlen = 5)

    class Small_Parser (ADI_Parser) :
        max_fieldlen = 2
    with pytest.raises (ADIF_Syntax_Error) :
        Small_Parser (io.BytesIO (b'<call:3>ABC<eor>')).parse ()


@pytest.mark.parametrize \
    ( 'data'
    , [ '<call:x>abc<eor>'
      , '<call:-1>abc<eor>'
      , '<call:+3>abc<eor>'
      , '<call>abc<eor>'
      , '<:3>abc<eor>'
      , '<call:3<eor>'
      , '<call:3>ab'
      , '<call::3>abc<eor>'
      ]
    )
def test_malformed_specifier (data) :
    with pytest.raises (ADIF_Syntax_Error) :
        adi_parse_string (data)


def test_typed_value_unsupported () :
    with pytest.raises (ADIF_Unsupported) as excinfo :
        adi_parse_string ('<call:6:S>KK6ZBI<eor>')
    assert isinstance (excinfo.value, NotImplementedError)
    assert isinstance (excinfo.value, ADIF_Error)
    assert not isinstance (excinfo.value, ADIF_Syntax_Error)


def test_eof_in_value () :
    with pytest.raises (ADIF_Syntax_Error) as excinfo :
        adi_parse_string ('<call:6>KK')
    assert 'unexpected end of input in value' in str (excinfo.value)


def test_dump () :
    adi = adi_parse_string \
        ('preamble\n<foo:3>123<eoh>\n<call:6>KK6ZBI<eor>')
    assert adi_dump (adi) == \
        ( 'preamble\n'
          '<foo:3>123\n'
          '<eoh>\n'
          '    <call:6>KK6ZBI\n'
          '<eor>\n'
        )
    assert str (adi) == adi_dump (adi)


def test_dump_no_header () :
    adi = adi_parse_string ('<call:6>KK6ZBI<eor>')
    assert adi_dump (adi).startswith ('(no header present)\n')
