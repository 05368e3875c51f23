from edupage.extractors import (
    GSH_EXTRACTORS,
    HiddenInputExtractor,
    JsonKeyExtractor,
    RegexExtractor,
    extract_first,
)

TTVIEWER_JSON = '{"r":{"_gsh":"8a7f3c21","regular":{"timetables":[]}}}'

TIMETABLE_PAGE = '''
<html><head>
<script>
  ASC.req_props = {"edupage":"myschool","lang":"en"};
  var ttviewer = {"_gsh" : "00ff12ab", "year": 2025};
</script>
</head><body><div id="skin_Div"></div></body></html>
'''

FORM_PAGE = '''
<html><body>
<form action="/timetable/" method="post">
  <input type="hidden" name="csrf" value="zzz">
  <input type="hidden" name="_gsh" value="deadbeef">
</form>
</body></html>
'''

LINK_PAGE = '<a href="/timetable/view.php?num=3&_gsh=1234abcd">print</a>'


def test_json_key_path():
    assert JsonKeyExtractor('r._gsh').extract(TTVIEWER_JSON) == '8a7f3c21'
    assert JsonKeyExtractor('r.missing').extract(TTVIEWER_JSON) is None
    assert JsonKeyExtractor('r.regular').extract(TTVIEWER_JSON) is None
    assert JsonKeyExtractor('r._gsh').extract('<html></html>') is None


def test_regex_strategy():
    ex = RegexExtractor(r'"edupage":"(\w+)"')

    assert ex.extract(TIMETABLE_PAGE) == 'myschool'
    assert ex.extract('nothing here') is None


def test_hidden_input_strategy():
    assert HiddenInputExtractor('_gsh').extract(FORM_PAGE) == 'deadbeef'
    assert HiddenInputExtractor('csrf').extract(FORM_PAGE) == 'zzz'
    assert HiddenInputExtractor('_gsh').extract(TIMETABLE_PAGE) is None
    assert HiddenInputExtractor('_gsh').extract('') is None


def test_first_match_wins_in_order():
    extractors = [RegexExtractor(r'nomatch(\d+)'), RegexExtractor(r'"year": (\d+)'), RegexExtractor(r'(\w+)')]

    assert extract_first(TIMETABLE_PAGE, extractors) == '2025'


def test_default_gsh_strategies_cover_known_page_shapes():
    assert extract_first(TTVIEWER_JSON, GSH_EXTRACTORS) == '8a7f3c21'
    assert extract_first(TIMETABLE_PAGE, GSH_EXTRACTORS) == '00ff12ab'
    assert extract_first(FORM_PAGE, GSH_EXTRACTORS) == 'deadbeef'
    assert extract_first(LINK_PAGE, GSH_EXTRACTORS) == '1234abcd'
    assert extract_first('<html>please reload</html>', GSH_EXTRACTORS) is None
