#hierarchia wyjatkow rzucanych przez codec
#kazdy blad konfiguracji wychodzi zanim przetworzymy choc jeden bajt strumienia


class PNGError(Exception):
    pass


#nieznana wartosc wyliczeniowa (np. pixel_format='gray')
class ArgumentError(PNGError, ValueError):
    pass


#zly typ wartosci opcji (np. True tam gdzie ma byc nazwa)
class OptionTypeError(PNGError, TypeError):
    pass


#liczba poza dozwolonym zakresem (np. compression=10)
class RangeError(PNGError, ValueError):
    pass


#uszkodzony albo niezgodny ze specyfikacja PNG strumien bajtow
class FormatError(PNGError, ValueError):
    pass


#niezgodna suma CRC chunka, zawsze fatalne
class IntegrityError(FormatError):
    pass


#ta sama sesja wywolana rownolegle z dwoch watkow
class SessionError(PNGError, RuntimeError):
    pass
