#!/usr/bin/python3
# Copyright (C) 2019-21 Dr. Ralf Schlatterbeck Open Source Consulting.
# Reichergasse 131, A-3411 Weidling.
# Web: http://www.runtux.com Email: office@runtux.com
# ****************************************************************************
# Redistribution and use in source and binary forms, with or without
# modification, are permitted provided that the following conditions are
# met:
#
# 1. Redistributions of source code must retain the above copyright
#    notice, this list of conditions and the following disclaimer.
#
# 2. Redistributions in binary form must reproduce the above copyright
#    notice, this list of conditions and the following disclaimer in the
#    documentation and/or other materials provided with the distribution.
#
# THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS
# IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED
# TO, THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A
# PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT
# HOLDER OR CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL,
# SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED
# TO, PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR
# PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING
# NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS
# SOFTWARE, EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
# ****************************************************************************

""" Physical layer of the ADI encoding of ADIF.
    The byte stream is turned into tokens, a small lookahead buffer
    lets the parser inspect a few tokens before committing to consume
    them, and the header and record parsers build an ADI_File from
    the field specifiers found. Values are kept as bytes here, they
    are decoded by the logical layer in adifparse.adif.
"""

import io
import logging
from collections      import namedtuple
from rsclib.autosuper import autosuper

logger = logging.getLogger (__name__)

class ADIF_Error (Exception) :
    """ Base class of all errors raised while parsing ADIF.
        The optional record is the 1-based index of the record where
        the error occurred, field is the name of the offending field.
    """

    def __init__ (self, msg, record = None, field = None) :
        super ().__init__ (msg)
        self.record = record
        self.field  = field
    # end def __init__

# end class ADIF_Error

class ADIF_Syntax_Error (ADIF_Error, RuntimeError)        : pass
class ADIF_Unsupported  (ADIF_Error, NotImplementedError) : pass

# Special strings
ADI_STR_EOH = b'eoh'
ADI_STR_EOR = b'eor'

def equal_ci (data, s) :
    """ Byte-wise ASCII case-insensitive comparison """
    return data.lower () == s.lower ()
# end def equal_ci

class ADI_Token (namedtuple ('ADI_Token', 'kind data')) :
    """ A lexical token of an ADI file.
        kind is one of 'lab', 'colon', 'rab', 'bytes', 'eof', data
        holds the bytes the token stands for.
    """

    __slots__ = ()

    descriptions = dict \
        ( lab   = '"<"'
        , colon = '":"'
        , rab   = '">"'
        , bytes = 'bytes'
        , eof   = 'end of input'
        )

    def description (self) :
        return self.descriptions [self.kind]
    # end def description

# end class ADI_Token

TOK_LAB   = ADI_Token ('lab',   b'<')
TOK_COLON = ADI_Token ('colon', b':')
TOK_RAB   = ADI_Token ('rab',   b'>')
TOK_EOF   = ADI_Token ('eof',   b'')

delimiters = { ord ('<') : TOK_LAB, ord (':') : TOK_COLON, ord ('>') : TOK_RAB }

class ADI_Tokenizer (autosuper) :
    """ Reads tokens from a buffered byte source.
        Each call to next_token consumes exactly the bytes of the
        returned token from the source, there is no pushback. Only
        bytes already in the buffer are inspected (via peek), so a
        source without peek is wrapped in an io.BufferedReader.
    """

    def __init__ (self, fd) :
        self.__super.__init__ ()
        self.wrapped = False
        if not hasattr (fd, 'peek') :
            fd = io.BufferedReader (fd)
            self.wrapped = True
        self.fd = fd
    # end def __init__

    def release (self) :
        """ Detach our own buffer so that it doesn't close the source """
        if self.wrapped :
            self.fd.detach ()
            self.wrapped = False
    # end def release

    def next_token (self) :
        buf = self.fd.peek (1)
        if not buf :
            return TOK_EOF
        if buf [0] in delimiters :
            self.fd.read (1)
            return delimiters [buf [0]]
        # A run of bytes may continue after the end of the buffer
        run = []
        while buf :
            n = 0
            for c in buf :
                if c in delimiters :
                    break
                if c > 0x7f or ((c < 0x20 or c == 0x7f) and c not in (13, 10)) :
                    raise ADIF_Syntax_Error \
                        ("expected ASCII character, but found byte 0x%x" % c)
                n += 1
            run.append (self.fd.read (n))
            if n < len (buf) :
                break
            buf = self.fd.peek (1)
        return ADI_Token ('bytes', b''.join (run))
    # end def next_token

# end class ADI_Tokenizer

class ADI_Parse_State (autosuper) :
    """ Lookahead buffer on top of the tokenizer.
        The unconsumed input is always the queued tokens followed by
        what remains in the source. The eof token is never removed
        from the queue once read. After an error from the tokenizer
        the state is faulted and every further peek re-raises that
        error without reading again.
    """

    def __init__ (self, fd) :
        self.__super.__init__ ()
        self.tokenizer = ADI_Tokenizer (fd)
        self.tokens    = []
        self.faulted   = False
        self.exhausted = False
        self.error     = None
    # end def __init__

    def advance (self, howmany) :
        if self.faulted :
            raise self.error
        while not self.exhausted and howmany > len (self.tokens) :
            try :
                t = self.tokenizer.next_token ()
            except (ADIF_Error, OSError) as err :
                self.faulted = True
                self.error   = err
                raise
            if t.kind == 'eof' :
                self.exhausted = True
            self.tokens.append (t)
    # end def advance

    def peek (self, which = 0) :
        """ Return token at offset which without consuming it """
        assert which >= 0
        self.advance (which + 1)
        if which < len (self.tokens) :
            return self.tokens [which]
        assert self.exhausted
        assert self.tokens [-1].kind == 'eof'
        return self.tokens [-1]
    # end def peek

    def consume (self, howmany) :
        """ Remove howmany tokens, these must have been peeked at """
        assert not self.faulted
        assert howmany <= len (self.tokens)
        assert not self.exhausted or howmany < len (self.tokens)
        del self.tokens [:howmany]
    # end def consume

# end class ADI_Parse_State

class ADI_Field (namedtuple ('ADI_Field', 'name canon length value type')) :
    """ A data specifier <name:length[:type]>value as found in the file.
        canon is the lower-cased name, value are exactly length bytes,
        type is None if no type tag was given.
    """

    __slots__ = ()

    def __new__ (cls, name, length, value, type = None, canon = None) :
        if canon is None :
            canon = name.lower ()
        return super ().__new__ (cls, name, canon, length, value, type)
    # end def __new__

    def __str__ (self) :
        t = ''
        if self.type is not None :
            t = ':' + self.type
        v = self.value.decode ('utf-8', errors = 'replace')
        return '<%s:%d%s>%s' % (self.canon, self.length, t, v)
    # end def __str__

# end class ADI_Field

class ADI_Header (autosuper) :

    def __init__ (self, text = b'', fields = None) :
        self.__super.__init__ ()
        self.text   = text
        self.fields = fields or []
    # end def __init__

# end class ADI_Header

class ADI_Record (autosuper) :

    def __init__ (self, fields = None) :
        self.__super.__init__ ()
        self.fields = fields or []
    # end def __init__

    def __iter__ (self) :
        return iter (self.fields)
    # end def __iter__

    def __len__ (self) :
        return len (self.fields)
    # end def __len__

# end class ADI_Record

class ADI_File (autosuper) :
    """ Complete physical ADI file: optional header and list of records.
        Not suitable for streaming, the whole file is kept in memory.
    """

    def __init__ (self, header = None, records = None) :
        self.__super.__init__ ()
        self.header  = header
        self.records = records or []
    # end def __init__

    def __str__ (self) :
        return adi_dump (self)
    # end def __str__

# end class ADI_File

class ADI_Parser (autosuper) :
    """ Parser for the ADI physical format.
        A data specifier is the token sequence

            <  FIELDNAME  :  FIELDLEN  >  FIELDVALUE  filler  <
            0  1          2  3         4

        tokens 0 to 4 are checked before anything is consumed. A
        colon at offset 4 would introduce a type tag which is not
        supported. The value may contain delimiter characters, these
        are taken literally until FIELDLEN bytes have been read.
    """

    # Upper limit for the declared length of a value
    max_fieldlen = 1024

    def __init__ (self, fd, max_fieldlen = None) :
        self.__super.__init__ ()
        self.state  = ADI_Parse_State (fd)
        self.recno  = None
        if max_fieldlen is not None :
            self.max_fieldlen = max_fieldlen
    # end def __init__

    def syntax_error (self, msg, field = None) :
        if self.recno is not None :
            msg = 'record %d: %s' % (self.recno, msg)
        return ADIF_Syntax_Error (msg, record = self.recno, field = field)
    # end def syntax_error

    def parse (self) :
        try :
            # Empty input has neither header nor records
            if self.state.peek (0).kind in ('lab', 'eof') :
                header = None
            else :
                header = self.parse_header ()
            records = self.parse_records ()
        finally :
            self.state.tokenizer.release ()
        return ADI_File (header, records)
    # end def parse

    def parse_header (self) :
        text   = bytearray ()
        fields = []
        while True :
            t = self.state.peek (0)
            # Stray ':' and '>' in the header are plain text
            if t.kind in ('bytes', 'colon', 'rab') :
                text.extend (t.data)
                self.state.consume (1)
            elif t.kind == 'lab' :
                t1 = self.state.peek (1)
                if t1.kind == 'bytes' and equal_ci (t1.data, ADI_STR_EOH) :
                    if self.state.peek (2).kind == 'rab' :
                        self.state.consume (3)
                        break
                # A field named "eoh" is technically allowed
                fields.append (self.parse_specifier ())
            else :
                raise self.syntax_error \
                    ('unexpected end of input while reading header')
        logger.debug \
            ('header: %d bytes of text, %d fields', len (text), len (fields))
        return ADI_Header (bytes (text), fields)
    # end def parse_header

    def parse_specifier (self) :
        state = self.state
        assert state.peek (0).kind == 'lab'
        t_name   = state.peek (1)
        t_colon  = state.peek (2)
        t_length = state.peek (3)
        t_rab    = state.peek (4)

        if t_name.kind != 'bytes' :
            raise self.syntax_error \
                ( 'parsing data specifier: expected field name, but found %s'
                % t_name.description ()
                )
        name = t_name.data.decode ('ascii')
        if t_colon.kind != 'colon' :
            raise self.syntax_error \
                ( 'parsing data specifier "%s": expected %s, but found %s'
                % (name, TOK_COLON.description (), t_colon.description ())
                , field = name
                )
        if t_length.kind != 'bytes' :
            raise self.syntax_error \
                ( 'parsing data specifier "%s": expected field length, '
                  'but found %s'
                % (name, t_length.description ())
                , field = name
                )
        length = self.parse_length (name, t_length.data)
        if t_rab.kind == 'colon' :
            raise ADIF_Unsupported \
                ( 'parsing data specifier "%s": typed values are not supported'
                % name
                , record = self.recno
                , field  = name
                )
        if t_rab.kind != 'rab' :
            raise self.syntax_error \
                ( 'parsing data specifier "%s": expected %s, but found %s'
                % (name, TOK_RAB.description (), t_rab.description ())
                , field = name
                )
        state.consume (5)

        value = bytearray ()
        while length > len (value) :
            t = state.peek (0)
            if t.kind == 'eof' :
                raise self.syntax_error \
                    ( 'parsing data specifier "%s": unexpected %s in value'
                    % (name, t.description ())
                    , field = name
                    )
            state.consume (1)
            value.extend (t.data [:length - len (value)])
        self.skip_filler ()
        assert len (value) == length
        return ADI_Field (name, length, bytes (value))
    # end def parse_specifier

    def parse_length (self, name, data) :
        if not data.isdigit () :
            raise self.syntax_error \
                ( 'parsing data specifier "%s": invalid length "%s"'
                % (name, data.decode ('ascii'))
                , field = name
                )
        try :
            length = int (data)
        except ValueError as err :
            raise self.syntax_error \
                ( 'parsing data specifier "%s" length: %s' % (name, err)
                , field = name
                )
        if length > self.max_fieldlen :
            raise self.syntax_error \
                ( 'parsing data specifier "%s": max supported size is %d bytes'
                % (name, self.max_fieldlen)
                , field = name
                )
        return length
    # end def parse_length

    def parse_records (self) :
        records = []
        self.skip_filler ()
        while self.state.peek (0).kind != 'eof' :
            self.recno = len (records) + 1
            records.append (self.parse_record ())
        self.recno = None
        logger.debug ('parsed %d records', len (records))
        return records
    # end def parse_records

    def parse_record (self) :
        state  = self.state
        fields = []
        while True :
            t = state.peek (0)
            if t.kind == 'eof' :
                raise self.syntax_error \
                    ('unexpected end of input while reading record')
            t1 = state.peek (1)
            if  (   t.kind == 'lab'
                and t1.kind == 'bytes'
                and equal_ci (t1.data, ADI_STR_EOR)
                and state.peek (2).kind == 'rab'
                ) :
                state.consume (3)
                self.skip_filler ()
                break
            fields.append (self.parse_specifier ())
        return ADI_Record (fields)
    # end def parse_record

    def skip_filler (self) :
        """ Discard tokens up to the next '<' or end of input.
            ADI allows arbitrary bytes after a value and after the
            end-of-record marker.
        """
        while self.state.peek (0).kind not in ('lab', 'eof') :
            self.state.consume (1)
    # end def skip_filler

# end class ADI_Parser

def adi_parse (fd, **kw) :
    """ Parse ADI from byte stream fd, return an ADI_File """
    return ADI_Parser (fd, **kw).parse ()
# end def adi_parse

def adi_parse_string (s, **kw) :
    if not isinstance (s, bytes) :
        s = s.encode ('utf-8')
    with io.BytesIO (s) as f :
        return adi_parse (f, **kw)
# end def adi_parse_string

def adi_dump (adi_file) :
    """ Human readable rendering of an ADI_File for debugging.
        This is not an export, lengths and padding are not retained.
    """
    r = []
    if adi_file.header is None :
        r.append ('(no header present)\n')
    else :
        r.append (adi_file.header.text.decode ('ascii'))
        for f in adi_file.header.fields :
            r.append ('%s\n' % (f,))
        r.append ('<eoh>\n')
    for rec in adi_file.records :
        for f in rec.fields :
            r.append ('    %s\n' % (f,))
        r.append ('<eor>\n')
    return ''.join (r)
# end def adi_dump
